"""Catalog documents. Owned by the catalog admin tooling; read-only here."""

from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field


class Course(Document):
    title: str
    description: str = ""
    price: float = 0  # rupees
    is_paid: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "courses"


class Lecture(Document):
    course_id: PydanticObjectId
    title: str
    video_url: str = ""
    order_index: int = 1
    duration: float = 0  # seconds, 0 if unknown
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "lectures"
        indexes = [[("course_id", 1), ("order_index", 1)]]
