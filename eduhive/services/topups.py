"""Manual UPI top-ups: the user claims a payment, an admin approves or rejects it."""

from datetime import datetime
from typing import Any

from beanie import PydanticObjectId, SortDirection

from eduhive.core.audit import log_event
from eduhive.core.config import get_settings
from eduhive.core.exceptions import AlreadyResolvedError, BadRequestError, InvalidAmountError, NotFoundError
from eduhive.core.logging import get_logger
from eduhive.core.money import positive_paise
from eduhive.models.wallet_transaction import WalletTransaction
from eduhive.services import ledger

log = get_logger(__name__)


async def request_top_up(
    user_id: PydanticObjectId,
    amount: Any,
    utr_reference: str,
    description: str | None = None,
) -> WalletTransaction:
    """Record a pending credit for later review. No balance change."""
    amount_paise = positive_paise(amount)
    if amount_paise > get_settings().topup_max_amount * 100:
        raise InvalidAmountError(amount, f"Top-up cannot exceed {get_settings().topup_max_amount}")
    utr = (utr_reference or "").strip()
    if not utr:
        raise BadRequestError("UTR number is required")
    entry = await ledger.record_transaction(
        user_id,
        amount,
        "credit",
        status="pending",
        description=description or f"Wallet top-up - UTR: {utr}",
        reference=utr,
    )
    await log_event(str(user_id), "topup_requested", "wallet_transaction", str(entry.id), {"amount_paise": amount_paise, "utr": utr})
    log.info("topup_requested", user_id=str(user_id), transaction_id=str(entry.id), amount_paise=amount_paise)
    return entry


async def _claim(transaction_id: PydanticObjectId, new_status: str, admin_id: str | None) -> WalletTransaction:
    """Flip pending -> new_status; exactly one caller wins."""
    result = await WalletTransaction.get_motor_collection().update_one(
        {"_id": transaction_id, "status": "pending", "type": "credit"},
        {"$set": {"status": new_status, "resolved_at": datetime.utcnow(), "resolved_by": admin_id}},
    )
    entry = await WalletTransaction.get(transaction_id)
    if not entry:
        raise NotFoundError("Transaction not found")
    if result.modified_count != 1:
        raise AlreadyResolvedError(str(transaction_id), entry.status)
    return entry


async def approve_top_up(transaction_id: PydanticObjectId, admin_id: str | None = None) -> WalletTransaction:
    """Mark a pending top-up completed and credit the wallet. A second approval is rejected."""
    entry = await _claim(transaction_id, "completed", admin_id)
    try:
        await ledger.credit_balance(entry.user_id, entry.amount_paise)
    except BaseException:
        # Put the request back in the queue so it can be reviewed again.
        await WalletTransaction.get_motor_collection().update_one(
            {"_id": transaction_id, "status": "completed"},
            {"$set": {"status": "pending", "resolved_at": None, "resolved_by": None}},
        )
        log.error("topup_credit_failed", transaction_id=str(transaction_id), user_id=str(entry.user_id))
        raise
    await log_event(
        str(entry.user_id),
        "topup_approved",
        "wallet_transaction",
        str(entry.id),
        {"amount_paise": entry.amount_paise},
        actor_id=admin_id,
    )
    log.info("topup_approved", transaction_id=str(entry.id), user_id=str(entry.user_id), amount_paise=entry.amount_paise)
    return entry


async def reject_top_up(transaction_id: PydanticObjectId, admin_id: str | None = None) -> WalletTransaction:
    entry = await _claim(transaction_id, "rejected", admin_id)
    await log_event(str(entry.user_id), "topup_rejected", "wallet_transaction", str(entry.id), actor_id=admin_id)
    log.info("topup_rejected", transaction_id=str(entry.id), user_id=str(entry.user_id))
    return entry


async def list_top_ups(status: str = "pending", limit: int = 50, offset: int = 0) -> tuple[list[WalletTransaction], int]:
    """Admin review queue, oldest first."""
    query = WalletTransaction.find(
        WalletTransaction.type == "credit",
        WalletTransaction.utr_reference != None,  # noqa: E711
        WalletTransaction.status == status,
    )
    total = await query.count()
    items = await query.sort([("created_at", SortDirection.ASCENDING), ("_id", SortDirection.ASCENDING)]).skip(offset).limit(limit).to_list()
    return items, total


def top_up_instructions() -> dict[str, str]:
    s = get_settings()
    return {"upi_id": s.upi_id, "payee_name": s.upi_payee_name}
