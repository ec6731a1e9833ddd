from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field


class AuditLog(Document):
    """Append-only trail of money and entitlement events."""
    user_id: str | None = None  # account affected
    actor_id: str | None = None  # who acted, when not the user (admin review)
    event_type: str  # purchase_completed, topup_requested, topup_approved, ...
    entity_type: str  # wallet_transaction | course_purchase
    entity_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "audit_logs"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("entity_type", 1), ("entity_id", 1)],
        ]
