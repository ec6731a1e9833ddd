"""Read-only view of the course catalog."""

from decimal import Decimal

from beanie import PydanticObjectId, SortDirection
from bson.errors import InvalidId

from eduhive.core.exceptions import NotFoundError
from eduhive.core.money import to_decimal
from eduhive.models.course import Course, Lecture


def parse_id(value: str, what: str = "Resource") -> PydanticObjectId:
    """Path ids that are not ObjectIds cannot exist: report them as not found."""
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError):
        raise NotFoundError(f"{what} not found")


async def get_course(course_id: PydanticObjectId) -> Course:
    course = await Course.get(course_id)
    if not course:
        raise NotFoundError("Course not found")
    return course


async def get_lectures(course_id: PydanticObjectId) -> list[Lecture]:
    """Lectures in play order: order_index, then insertion."""
    return await Lecture.find(Lecture.course_id == course_id).sort(
        [("order_index", SortDirection.ASCENDING), ("_id", SortDirection.ASCENDING)]
    ).to_list()


def course_price(course: Course) -> Decimal:
    return to_decimal(course.price or 0)


def is_free(course: Course) -> bool:
    return not course.is_paid or course_price(course) <= 0


def serialize_course(course: Course | None) -> dict | None:
    if course is None:
        return None
    return {
        "id": str(course.id),
        "title": course.title,
        "description": course.description,
        "price": course_price(course),
        "is_paid": course.is_paid,
    }


def serialize_lecture(lecture: Lecture) -> dict:
    return {
        "id": str(lecture.id),
        "course_id": str(lecture.course_id),
        "title": lecture.title,
        "video_url": lecture.video_url,
        "order_index": lecture.order_index,
        "duration": lecture.duration,
    }
