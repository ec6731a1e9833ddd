from fastapi import APIRouter, Depends

from eduhive.deps import get_current_user
from eduhive.models.user import User
from eduhive.services import catalog, unlock

router = APIRouter()


@router.get("/courses/{course_id}/lectures")
async def course_lectures(course_id: str, user: User = Depends(get_current_user)):
    """Ordered lectures with completed/locked flags. Paid courses require a purchase."""
    course = await catalog.get_course(catalog.parse_id(course_id, "Course"))
    return await unlock.lectures_with_access(user.id, course)


@router.get("/courses/{course_id}/lectures/{lecture_id}")
async def course_lecture_open(course_id: str, lecture_id: str, user: User = Depends(get_current_user)):
    """Open a single lecture; earlier lectures must be completed first."""
    course = await catalog.get_course(catalog.parse_id(course_id, "Course"))
    lecture = await unlock.assert_can_open(user.id, course, catalog.parse_id(lecture_id, "Lecture"))
    return catalog.serialize_lecture(lecture)
