from datetime import datetime
from typing import Literal

from beanie import Document, PydanticObjectId
from pydantic import Field

TransactionType = Literal["credit", "debit"]
TransactionStatus = Literal["pending", "completed", "rejected"]


class WalletTransaction(Document):
    """Ledger entry. Only a pending top-up ever changes, and only once."""
    user_id: PydanticObjectId
    amount_paise: int  # always positive; direction comes from type
    type: TransactionType
    status: TransactionStatus
    description: str = ""
    utr_reference: str | None = None  # claimed UPI reference, top-ups only
    course_id: PydanticObjectId | None = None  # purchase debits
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "wallet_transactions"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("status", 1), ("created_at", 1)],
        ]
