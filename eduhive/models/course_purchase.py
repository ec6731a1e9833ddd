from datetime import datetime
from typing import Literal

from beanie import Document, PydanticObjectId
from pydantic import Field
from pymongo import ASCENDING, IndexModel


class CoursePurchase(Document):
    """Entitlement record: one per (user, course)."""
    user_id: PydanticObjectId
    course_id: PydanticObjectId
    amount_paise: int = 0
    status: Literal["completed"] = "completed"
    transaction_id: str  # WalletTransaction id, or FREE-<ms> for free enrollment
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "course_purchases"
        indexes = [
            IndexModel([("user_id", ASCENDING), ("course_id", ASCENDING)], unique=True, name="user_course_unique"),
            [("user_id", 1), ("created_at", -1)],
        ]
