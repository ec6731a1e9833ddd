from typing import Literal

from fastapi import APIRouter, Depends, Query

from eduhive.core.pagination import Page, paginate
from eduhive.deps import require_admin
from eduhive.models.course import Course, Lecture
from eduhive.models.user import User
from eduhive.models.wallet_transaction import WalletTransaction
from eduhive.services import catalog, ledger
from eduhive.services import topups as topups_service

router = APIRouter()


@router.get("/topups")
async def admin_topups(
    user: User = Depends(require_admin),
    status: Literal["pending", "completed", "rejected"] = "pending",
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
):
    """Admin: top-up requests for review (oldest first)."""
    limit, offset = paginate(limit, offset)
    items, total = await topups_service.list_top_ups(status, limit, offset)
    page = Page[dict].build(
        [{**ledger.serialize_transaction(e), "user_id": str(e.user_id)} for e in items],
        limit,
        offset,
        total,
    )
    return page.model_dump()


@router.post("/topups/{transaction_id}/approve")
async def admin_topup_approve(transaction_id: str, user: User = Depends(require_admin)):
    """Admin: confirm the UPI payment arrived; credits the wallet once."""
    entry = await topups_service.approve_top_up(catalog.parse_id(transaction_id, "Transaction"), admin_id=str(user.id))
    return {
        "transaction": ledger.serialize_transaction(entry),
        "new_balance": await ledger.get_balance(entry.user_id),
    }


@router.post("/topups/{transaction_id}/reject")
async def admin_topup_reject(transaction_id: str, user: User = Depends(require_admin)):
    entry = await topups_service.reject_top_up(catalog.parse_id(transaction_id, "Transaction"), admin_id=str(user.id))
    return {"transaction": ledger.serialize_transaction(entry)}


@router.get("/users/{user_id}/ledger-check")
async def admin_ledger_check(user_id: str, user: User = Depends(require_admin)):
    """Admin: stored balance against the sum of completed ledger entries."""
    return await ledger.reconcile(catalog.parse_id(user_id, "User"))


@router.get("/stats")
async def admin_stats(user: User = Depends(require_admin)):
    return {
        "total_courses": await Course.count(),
        "active_courses": await Course.find(Course.is_active == True).count(),  # noqa: E712
        "total_lectures": await Lecture.count(),
        "total_users": await User.count(),
        "pending_wallet_requests": await WalletTransaction.find(WalletTransaction.status == "pending").count(),
    }
