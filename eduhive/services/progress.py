"""Per-lecture watch progress with sticky completion, and per-course summaries."""

import math
from datetime import datetime
from typing import Any

from beanie import PydanticObjectId
from pymongo.errors import DuplicateKeyError

from eduhive.core.config import get_settings
from eduhive.core.exceptions import BadRequestError
from eduhive.core.logging import get_logger
from eduhive.models.course import Lecture
from eduhive.models.lecture_progress import LectureProgress
from eduhive.services import catalog

log = get_logger(__name__)


def is_complete(position: float, duration: float, ended: bool = False) -> bool:
    """Ended playback, or at least the completion threshold (90%) of a known duration."""
    if ended:
        return True
    return duration > 0 and position / duration >= get_settings().progress_completion_threshold


async def get_progress(user_id: PydanticObjectId, lecture_id: PydanticObjectId) -> LectureProgress | None:
    return await LectureProgress.find_one(
        LectureProgress.user_id == user_id,
        LectureProgress.lecture_id == lecture_id,
    )


async def upsert_progress(
    user_id: PydanticObjectId,
    course_id: PydanticObjectId,
    lecture_id: PydanticObjectId,
    position: float,
    duration: float,
    ended: bool = False,
) -> LectureProgress:
    """
    Last write wins for position; duration sticks once known; completed only
    ever goes from false to true.
    """
    if not (math.isfinite(position) and math.isfinite(duration)):
        raise BadRequestError("position and duration must be finite numbers")
    if position < 0 or duration < 0:
        raise BadRequestError("position and duration must be non-negative")
    existing = await get_progress(user_id, lecture_id)
    if duration <= 0 and existing is not None:
        duration = existing.duration
    if duration > 0:
        position = duration if ended else min(position, duration)
    completed = is_complete(position, duration, ended)

    now = datetime.utcnow()
    fields: dict[str, Any] = {"course_id": course_id, "position": position, "updated_at": now}
    on_insert: dict[str, Any] = {"created_at": now}
    if duration > 0:
        fields["duration"] = duration
    else:
        on_insert["duration"] = 0
    if completed:
        fields["completed"] = True
    else:
        on_insert["completed"] = False

    query = {"user_id": user_id, "lecture_id": lecture_id}
    update = {"$set": fields, "$setOnInsert": on_insert}
    collection = LectureProgress.get_motor_collection()
    try:
        await collection.update_one(query, update, upsert=True)
    except DuplicateKeyError:
        # Lost an insert race with another device; the row exists now.
        await collection.update_one(query, update)

    row = await get_progress(user_id, lecture_id)
    if completed and not (existing and existing.completed):
        log.info("lecture_completed", user_id=str(user_id), lecture_id=str(lecture_id), course_id=str(course_id))
    return row


async def rows_for_lectures(user_id: PydanticObjectId, lectures: list[Lecture]) -> dict[PydanticObjectId, LectureProgress]:
    if not lectures:
        return {}
    rows = await LectureProgress.find(
        LectureProgress.user_id == user_id,
        {"lecture_id": {"$in": [lec.id for lec in lectures]}},
    ).to_list()
    return {r.lecture_id: r for r in rows}


def first_incomplete_index(lectures: list[Lecture], rows: dict[PydanticObjectId, LectureProgress]) -> int | None:
    for i, lec in enumerate(lectures):
        row = rows.get(lec.id)
        if row is None or not row.completed:
            return i
    return None


async def get_course_progress(user_id: PydanticObjectId, course_id: PydanticObjectId) -> dict[str, Any]:
    lectures = await catalog.get_lectures(course_id)
    rows = await rows_for_lectures(user_id, lectures)
    total = len(lectures)
    done = 0
    remaining = 0.0
    for lec in lectures:
        row = rows.get(lec.id)
        if row is not None and row.completed:
            done += 1
            continue
        # Unstarted lectures count in full, using the catalog length.
        duration = row.duration if row is not None and row.duration > 0 else lec.duration
        position = row.position if row is not None else 0
        remaining += max(0.0, duration - position)
    return {
        "summary": {
            "percent": done / total if total else 0,
            "completed_lectures": done,
            "total_lectures": total,
            "remaining_seconds": int(round(remaining)),
        },
        "items": [serialize_progress(rows[lec.id]) for lec in lectures if lec.id in rows],
    }


async def get_next_lecture(user_id: PydanticObjectId, course_id: PydanticObjectId) -> PydanticObjectId | None:
    """First incomplete lecture in order; the last one once everything is done."""
    lectures = await catalog.get_lectures(course_id)
    if not lectures:
        return None
    idx = first_incomplete_index(lectures, await rows_for_lectures(user_id, lectures))
    return lectures[-1 if idx is None else idx].id


def serialize_progress(p: LectureProgress) -> dict[str, Any]:
    return {
        "id": str(p.id),
        "course_id": str(p.course_id),
        "lecture_id": str(p.lecture_id),
        "position": p.position,
        "duration": p.duration,
        "completed": p.completed,
        "updated_at": p.updated_at.isoformat(),
    }
