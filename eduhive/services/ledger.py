"""Wallet ledger: the balance lives on the user document, the history in wallet_transactions.

Every balance change is one guarded update_one on the user, so concurrent debits
serialise in MongoDB and the balance check can never run against stale data.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncIterator

from beanie import PydanticObjectId, SortDirection
from pymongo.errors import DuplicateKeyError

from eduhive.core.exceptions import (
    AlreadyPurchasedError,
    BadRequestError,
    InsufficientFundsError,
    NotFoundError,
)
from eduhive.core.logging import get_logger
from eduhive.core.money import from_paise, positive_paise
from eduhive.models.user import PendingPurchase, User
from eduhive.models.wallet_transaction import WalletTransaction

log = get_logger(__name__)

TYPES = ("credit", "debit")
INITIAL_STATUSES = ("pending", "completed")


async def get_balance(user_id: PydanticObjectId) -> Decimal:
    """Return current wallet balance."""
    user = await User.get(user_id)
    if not user:
        raise NotFoundError("User not found")
    return from_paise(user.wallet_balance_paise)


async def _apply_delta(
    user_id: PydanticObjectId,
    delta_paise: int,
    course_id: PydanticObjectId | None = None,
    intent: PendingPurchase | None = None,
) -> bool:
    """
    Move the balance by delta_paise in one conditional update.
    Debits require enough balance; with course_id the course must not be entitled yet
    and is added to entitled_course_ids in the same write, together with the intent
    that lets an interrupted purchase be finished later.
    Returns False when the guard did not match.
    """
    query: dict[str, Any] = {"_id": user_id}
    update: dict[str, Any] = {
        "$inc": {"wallet_balance_paise": delta_paise},
        "$set": {"updated_at": datetime.utcnow()},
    }
    if delta_paise < 0:
        query["wallet_balance_paise"] = {"$gte": -delta_paise}
    if course_id is not None:
        query["entitled_course_ids"] = {"$ne": course_id}
        update["$addToSet"] = {"entitled_course_ids": course_id}
    if intent is not None:
        update["$push"] = {"pending_purchases": intent.model_dump()}
    result = await User.get_motor_collection().update_one(query, update)
    return result.matched_count == 1


async def _revert_delta(
    user_id: PydanticObjectId,
    delta_paise: int,
    course_id: PydanticObjectId | None = None,
) -> None:
    update: dict[str, Any] = {
        "$inc": {"wallet_balance_paise": -delta_paise},
        "$set": {"updated_at": datetime.utcnow()},
    }
    if course_id is not None:
        update["$pull"] = {
            "entitled_course_ids": course_id,
            "pending_purchases": {"course_id": course_id},
        }
    await User.get_motor_collection().update_one({"_id": user_id}, update)


async def clear_intent(user_id: PydanticObjectId, course_id: PydanticObjectId) -> None:
    """Drop the pending-purchase intent once its enrollment is stored."""
    await User.get_motor_collection().update_one(
        {"_id": user_id},
        {"$pull": {"pending_purchases": {"course_id": course_id}}},
    )


async def credit_balance(user_id: PydanticObjectId, amount_paise: int) -> None:
    """Apply an already-recorded completed credit (top-up approval)."""
    if not await _apply_delta(user_id, amount_paise):
        raise NotFoundError("User not found")


async def reverse_entry(entry: WalletTransaction) -> None:
    """
    Undo a completed entry written in the current unit of work: restore the
    balance (and entitlement marker) and drop the entry.
    """
    delta = entry.amount_paise if entry.type == "credit" else -entry.amount_paise
    await _revert_delta(entry.user_id, delta, entry.course_id)
    if entry.id is not None:
        await entry.delete()
    log.warning(
        "ledger_entry_reversed",
        user_id=str(entry.user_id),
        transaction_id=str(entry.id),
        type=entry.type,
        amount_paise=entry.amount_paise,
    )


async def record_transaction(
    user_id: PydanticObjectId,
    amount: Any,
    type: str,
    status: str = "completed",
    description: str = "",
    reference: str | None = None,
    *,
    course_id: PydanticObjectId | None = None,
    purchase_id: PydanticObjectId | None = None,
) -> WalletTransaction:
    """
    Append a ledger entry. Completed entries move the balance atomically with the
    guard; pending entries leave it untouched until resolved.
    With course_id the debit also stores a PendingPurchase intent naming this entry
    and purchase_id, so a worker that dies before the entry or the enrollment is
    written leaves enough behind for purchases.settle_pending to finish the unit.
    Raises InsufficientFundsError for an unaffordable debit and AlreadyPurchasedError
    when course_id is already entitled.
    """
    if type not in TYPES:
        raise BadRequestError(f"Invalid transaction type: {type}")
    if status not in INITIAL_STATUSES:
        raise BadRequestError(f"Invalid initial status: {status}")
    amount_paise = positive_paise(amount)
    user = await User.get(user_id)
    if not user:
        raise NotFoundError("User not found")

    entry = WalletTransaction(
        id=PydanticObjectId(),
        user_id=user_id,
        amount_paise=amount_paise,
        type=type,
        status=status,
        description=description,
        utr_reference=reference,
        course_id=course_id,
    )
    if status == "pending":
        await entry.insert()
        return entry

    intent = None
    if course_id is not None:
        intent = PendingPurchase(
            course_id=course_id,
            purchase_id=purchase_id or PydanticObjectId(),
            transaction_id=str(entry.id),
            amount_paise=amount_paise,
            description=description,
            created_at=entry.created_at,
        )
    delta = amount_paise if type == "credit" else -amount_paise
    if not await _apply_delta(user_id, delta, course_id, intent):
        fresh = await User.get(user_id)
        if not fresh:
            raise NotFoundError("User not found")
        if course_id is not None and course_id in fresh.entitled_course_ids:
            raise AlreadyPurchasedError(str(course_id))
        raise InsufficientFundsError(
            required=from_paise(amount_paise),
            available=from_paise(fresh.wallet_balance_paise),
        )
    try:
        await entry.insert()
    except DuplicateKeyError:
        # settle_pending already stored this entry from the intent.
        pass
    except BaseException:
        await _revert_delta(user_id, delta, course_id)
        log.error("ledger_entry_write_failed", user_id=str(user_id), type=type, amount_paise=amount_paise)
        raise
    log.info(
        "ledger_entry_recorded",
        user_id=str(user_id),
        transaction_id=str(entry.id),
        type=type,
        amount_paise=amount_paise,
    )
    return entry


def _history_query(user_id: PydanticObjectId, status: str | None = None):
    filters = [WalletTransaction.user_id == user_id]
    if status:
        filters.append(WalletTransaction.status == status)
    return WalletTransaction.find(*filters).sort(
        [("created_at", SortDirection.DESCENDING), ("_id", SortDirection.DESCENDING)]
    )


async def iter_transactions(user_id: PydanticObjectId, status: str | None = None) -> AsyncIterator[WalletTransaction]:
    """Stream the history newest first over a single cursor."""
    async for entry in _history_query(user_id, status):
        yield entry


async def list_transactions(
    user_id: PydanticObjectId,
    limit: int | None = None,
    offset: int = 0,
) -> list[WalletTransaction]:
    """Return ledger entries for user (newest first)."""
    query = _history_query(user_id)
    if offset:
        query = query.skip(offset)
    if limit:
        query = query.limit(limit)
    return await query.to_list()


async def reconcile(user_id: PydanticObjectId) -> dict[str, Any]:
    """Recompute the balance from completed entries and compare with the stored one."""
    user = await User.get(user_id)
    if not user:
        raise NotFoundError("User not found")
    total = 0
    async for entry in iter_transactions(user_id, status="completed"):
        total += entry.amount_paise if entry.type == "credit" else -entry.amount_paise
    consistent = total == user.wallet_balance_paise
    if not consistent:
        log.error(
            "ledger_mismatch",
            user_id=str(user_id),
            balance_paise=user.wallet_balance_paise,
            ledger_paise=total,
        )
    return {
        "user_id": str(user_id),
        "balance": from_paise(user.wallet_balance_paise),
        "ledger_balance": from_paise(total),
        "consistent": consistent,
    }


def serialize_transaction(e: WalletTransaction) -> dict[str, Any]:
    return {
        "id": str(e.id),
        "amount": from_paise(e.amount_paise),
        "type": e.type,
        "status": e.status,
        "description": e.description,
        "utr_reference": e.utr_reference,
        "course_id": str(e.course_id) if e.course_id else None,
        "resolved_at": e.resolved_at.isoformat() if e.resolved_at else None,
        "created_at": e.created_at.isoformat(),
    }
