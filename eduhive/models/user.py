from datetime import datetime

from beanie import Document, Indexed, PydanticObjectId
from pydantic import BaseModel, Field


class PendingPurchase(BaseModel):
    """Intent written with the debit; cleared once the enrollment is stored."""
    course_id: PydanticObjectId
    purchase_id: PydanticObjectId
    transaction_id: str  # WalletTransaction id, or FREE-<ms>
    amount_paise: int = 0
    description: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)


class User(Document):
    email: Indexed(str, unique=True)
    name: str = ""
    role: str = "user"  # "user" | "teacher" | "admin"
    session_version: int = 0
    # Mutated only through services.ledger and services.purchases.
    wallet_balance_paise: int = 0
    entitled_course_ids: list[PydanticObjectId] = Field(default_factory=list)
    pending_purchases: list[PendingPurchase] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
