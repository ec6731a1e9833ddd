"""Top-up requests resolve exactly once."""

import asyncio
from decimal import Decimal
from unittest.mock import patch

import pytest
from beanie import PydanticObjectId

from eduhive.core.exceptions import AlreadyResolvedError, BadRequestError, InvalidAmountError, NotFoundError
from eduhive.models.audit_log import AuditLog
from eduhive.models.wallet_transaction import WalletTransaction
from eduhive.services import ledger, topups

pytestmark = pytest.mark.asyncio


async def test_request_is_pending_without_balance_change(make_user):
    user = await make_user()
    entry = await topups.request_top_up(user.id, 500, "ABC123")
    assert entry.status == "pending"
    assert entry.type == "credit"
    assert entry.utr_reference == "ABC123"
    assert entry.description == "Wallet top-up - UTR: ABC123"
    assert await ledger.get_balance(user.id) == Decimal("0.00")


async def test_approve_credits_once(make_user):
    user = await make_user()
    entry = await topups.request_top_up(user.id, 500, "ABC123")

    approved = await topups.approve_top_up(entry.id, admin_id="admin-1")
    assert approved.status == "completed"
    assert approved.resolved_by == "admin-1"
    assert await ledger.get_balance(user.id) == Decimal("500.00")

    with pytest.raises(AlreadyResolvedError) as exc:
        await topups.approve_top_up(entry.id)
    assert exc.value.details["status"] == "completed"
    assert await ledger.get_balance(user.id) == Decimal("500.00")
    assert (await ledger.reconcile(user.id))["consistent"] is True
    assert await AuditLog.find(AuditLog.event_type == "topup_approved").count() == 1


async def test_reject_then_approve_is_refused(make_user):
    user = await make_user()
    entry = await topups.request_top_up(user.id, 250, "UTR-9")
    rejected = await topups.reject_top_up(entry.id)
    assert rejected.status == "rejected"
    with pytest.raises(AlreadyResolvedError):
        await topups.approve_top_up(entry.id)
    with pytest.raises(AlreadyResolvedError):
        await topups.reject_top_up(entry.id)
    assert await ledger.get_balance(user.id) == Decimal("0.00")


async def test_concurrent_approvals_apply_once(make_user):
    user = await make_user()
    entry = await topups.request_top_up(user.id, 300, "UTR-RACE")
    results = await asyncio.gather(
        *(topups.approve_top_up(entry.id) for _ in range(5)),
        return_exceptions=True,
    )
    assert sum(isinstance(r, WalletTransaction) for r in results) == 1
    assert sum(isinstance(r, AlreadyResolvedError) for r in results) == 4
    assert await ledger.get_balance(user.id) == Decimal("300.00")


async def test_failed_credit_returns_request_to_queue(make_user):
    user = await make_user()
    entry = await topups.request_top_up(user.id, 300, "UTR-RETRY")

    with patch.object(ledger, "credit_balance", side_effect=RuntimeError("worker crashed")):
        with pytest.raises(RuntimeError):
            await topups.approve_top_up(entry.id)

    assert (await WalletTransaction.get(entry.id)).status == "pending"
    assert await ledger.get_balance(user.id) == Decimal("0.00")
    await topups.approve_top_up(entry.id)
    assert await ledger.get_balance(user.id) == Decimal("300.00")


async def test_unknown_transaction(make_user):
    with pytest.raises(NotFoundError):
        await topups.approve_top_up(PydanticObjectId())


async def test_debit_entries_cannot_be_approved(make_user):
    user = await make_user(balance=100)
    debit = await ledger.record_transaction(user.id, 10, "debit")
    with pytest.raises(AlreadyResolvedError):
        await topups.approve_top_up(debit.id)


async def test_invalid_requests(make_user):
    user = await make_user()
    with pytest.raises(InvalidAmountError):
        await topups.request_top_up(user.id, 0, "UTR")
    with pytest.raises(InvalidAmountError):
        await topups.request_top_up(user.id, -10, "UTR")
    with pytest.raises(InvalidAmountError):
        await topups.request_top_up(user.id, 10_000_000, "UTR")
    with pytest.raises(InvalidAmountError):
        await topups.request_top_up(user.id, "1e30", "UTR")
    with pytest.raises(BadRequestError):
        await topups.request_top_up(user.id, 10, "   ")
    assert await WalletTransaction.find().count() == 0


async def test_review_queue(make_user):
    user = await make_user()
    first = await topups.request_top_up(user.id, 100, "U1")
    second = await topups.request_top_up(user.id, 200, "U2")
    await topups.approve_top_up(first.id)
    pending, total = await topups.list_top_ups("pending")
    assert total == 1
    assert [e.id for e in pending] == [second.id]
    done, _ = await topups.list_top_ups("completed")
    assert [e.id for e in done] == [first.id]
