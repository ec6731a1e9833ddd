from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field
from pymongo import ASCENDING, IndexModel


class LectureProgress(Document):
    user_id: PydanticObjectId
    course_id: PydanticObjectId
    lecture_id: PydanticObjectId
    position: float = 0  # seconds
    duration: float = 0  # seconds; authoritative once > 0
    completed: bool = False  # sticky
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "lecture_progress"
        indexes = [
            IndexModel([("user_id", ASCENDING), ("lecture_id", ASCENDING)], unique=True, name="user_lecture_unique"),
            [("user_id", 1), ("course_id", 1)],
        ]
