from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from eduhive.deps import get_current_user
from eduhive.models.user import User
from eduhive.services import catalog, unlock
from eduhive.services import progress as progress_service

router = APIRouter()


class ProgressUpsert(BaseModel):
    course_id: str
    lecture_id: str
    position: float = Field(..., ge=0, allow_inf_nan=False)
    duration: float = Field(0, ge=0, allow_inf_nan=False)
    ended: bool = False  # player reported end of video


@router.post("/upsert")
async def progress_upsert(body: ProgressUpsert, user: User = Depends(get_current_user)):
    """Record playback position for a lecture the user may open."""
    course = await catalog.get_course(catalog.parse_id(body.course_id, "Course"))
    lecture = await unlock.assert_can_open(user.id, course, catalog.parse_id(body.lecture_id, "Lecture"))
    row = await progress_service.upsert_progress(
        user.id,
        course.id,
        lecture.id,
        body.position,
        body.duration,
        ended=body.ended,
    )
    return progress_service.serialize_progress(row)


@router.get("/course/{course_id}")
async def progress_course(course_id: str, user: User = Depends(get_current_user)):
    course = await catalog.get_course(catalog.parse_id(course_id, "Course"))
    await unlock.ensure_entitled(user.id, course)
    return await progress_service.get_course_progress(user.id, course.id)


@router.get("/next/{course_id}")
async def progress_next(course_id: str, user: User = Depends(get_current_user)):
    """Lecture to resume: first incomplete, or the last one when all are done."""
    course = await catalog.get_course(catalog.parse_id(course_id, "Course"))
    await unlock.ensure_entitled(user.id, course)
    lecture_id = await progress_service.get_next_lecture(user.id, course.id)
    return {"lecture_id": str(lecture_id) if lecture_id else None}
