"""Who may open which lecture: entitlement for paid courses, then strict sequence."""

from typing import Any

from beanie import PydanticObjectId

from eduhive.core.exceptions import LockedError, NotFoundError, NotPurchasedError
from eduhive.models.course import Course, Lecture
from eduhive.services import catalog, progress, purchases


async def ensure_entitled(user_id: PydanticObjectId, course: Course) -> None:
    """Paid courses need a completed purchase. The error only reveals id and price."""
    if catalog.is_free(course):
        return
    if not await purchases.check_purchased(user_id, course.id):
        raise NotPurchasedError(str(course.id), catalog.course_price(course))


async def lectures_with_access(user_id: PydanticObjectId, course: Course) -> list[dict[str, Any]]:
    """Ordered lectures, each flagged completed/locked for this user."""
    await ensure_entitled(user_id, course)
    lectures = await catalog.get_lectures(course.id)
    rows = await progress.rows_for_lectures(user_id, lectures)
    unlocked_upto = progress.first_incomplete_index(lectures, rows)
    out = []
    for i, lec in enumerate(lectures):
        row = rows.get(lec.id)
        item = catalog.serialize_lecture(lec)
        item["completed"] = bool(row and row.completed)
        item["locked"] = unlocked_upto is not None and i > unlocked_upto
        out.append(item)
    return out


async def assert_can_open(user_id: PydanticObjectId, course: Course, lecture_id: PydanticObjectId) -> Lecture:
    """
    Return the lecture if the user may open it. Lecture i opens only when every
    earlier lecture is completed; the first lecture is always open.
    """
    await ensure_entitled(user_id, course)
    lectures = await catalog.get_lectures(course.id)
    index = next((i for i, lec in enumerate(lectures) if lec.id == lecture_id), None)
    if index is None:
        raise NotFoundError("Lecture not found")
    if index == 0:
        return lectures[0]
    rows = await progress.rows_for_lectures(user_id, lectures[:index])
    blocking = progress.first_incomplete_index(lectures[:index], rows)
    if blocking is not None:
        raise LockedError(str(lecture_id), str(lectures[blocking].id))
    return lectures[index]
