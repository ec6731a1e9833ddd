"""Purchase engine: debit and enrollment together, never twice."""

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from beanie import PydanticObjectId
from pymongo.errors import PyMongoError

from eduhive.core.exceptions import AlreadyPurchasedError, InsufficientFundsError, NotFoundError
from eduhive.models.course_purchase import CoursePurchase
from eduhive.models.user import PendingPurchase, User
from eduhive.models.wallet_transaction import WalletTransaction
from eduhive.services import ledger, purchases

pytestmark = pytest.mark.asyncio


async def test_paid_purchase_debits_and_enrolls(make_user, make_course):
    user = await make_user(balance=200)
    course, _ = await make_course(price=150, title="DSA using Python")

    out = await purchases.purchase(user.id, course.id)

    assert out["new_balance"] == Decimal("50.00")
    record = out["purchase"]
    assert record.amount_paise == 15000
    debits = await WalletTransaction.find(WalletTransaction.type == "debit").to_list()
    assert len(debits) == 1
    assert debits[0].amount_paise == 15000
    assert debits[0].status == "completed"
    assert debits[0].description == "Course purchase: DSA using Python"
    assert record.transaction_id == str(debits[0].id)
    assert await CoursePurchase.find().count() == 1
    assert await purchases.check_purchased(user.id, course.id) is True
    assert (await ledger.reconcile(user.id))["consistent"] is True


async def test_insufficient_funds_changes_nothing(make_user, make_course):
    user = await make_user(balance=100)
    course, _ = await make_course(price=150)

    with pytest.raises(InsufficientFundsError) as exc:
        await purchases.purchase(user.id, course.id)

    assert exc.value.details == {"required": 150.0, "available": 100.0}
    assert await ledger.get_balance(user.id) == Decimal("100.00")
    assert await CoursePurchase.find().count() == 0
    assert await WalletTransaction.find(WalletTransaction.type == "debit").count() == 0
    fresh = await User.get(user.id)
    assert fresh.entitled_course_ids == []


async def test_free_course_enrolls_without_ledger(make_user, make_course):
    user = await make_user(balance=30)
    course, _ = await make_course(price=99, is_paid=False)
    before = await WalletTransaction.find().count()

    out = await purchases.purchase(user.id, course.id)

    assert out["purchase"].amount_paise == 0
    assert out["purchase"].transaction_id.startswith("FREE-")
    assert out["new_balance"] == Decimal("30.00")
    assert await WalletTransaction.find().count() == before


async def test_zero_price_paid_flag_is_free(make_user, make_course):
    user = await make_user()
    course, _ = await make_course(price=0, is_paid=True)
    out = await purchases.purchase(user.id, course.id)
    assert out["purchase"].amount_paise == 0


async def test_retry_after_success_is_rejected_without_charge(make_user, make_course):
    user = await make_user(balance=500)
    course, _ = await make_course(price=150)
    await purchases.purchase(user.id, course.id)
    with pytest.raises(AlreadyPurchasedError):
        await purchases.purchase(user.id, course.id)
    assert await ledger.get_balance(user.id) == Decimal("350.00")


async def test_concurrent_same_course_single_success(make_user, make_course):
    user = await make_user(balance=1000)
    course, _ = await make_course(price=150)

    results = await asyncio.gather(
        *(purchases.purchase(user.id, course.id) for _ in range(6)),
        return_exceptions=True,
    )

    assert sum(isinstance(r, dict) for r in results) == 1
    assert sum(isinstance(r, AlreadyPurchasedError) for r in results) == 5
    assert await ledger.get_balance(user.id) == Decimal("850.00")
    assert await CoursePurchase.find().count() == 1
    assert await WalletTransaction.find(WalletTransaction.type == "debit").count() == 1


async def test_concurrent_different_courses_respect_balance(make_user, make_course):
    user = await make_user(balance=250)
    courses = [(await make_course(price=100, title=f"C{i}"))[0] for i in range(4)]

    results = await asyncio.gather(
        *(purchases.purchase(user.id, c.id) for c in courses),
        return_exceptions=True,
    )

    assert sum(isinstance(r, dict) for r in results) == 2
    assert sum(isinstance(r, InsufficientFundsError) for r in results) == 2
    assert await ledger.get_balance(user.id) == Decimal("50.00")
    assert (await ledger.reconcile(user.id))["consistent"] is True


async def test_enrollment_write_failure_rolls_back_debit(make_user, make_course):
    user = await make_user(balance=200)
    course, _ = await make_course(price=150)

    with patch.object(CoursePurchase, "insert", side_effect=PyMongoError("connection lost")):
        with pytest.raises(PyMongoError):
            await purchases.purchase(user.id, course.id)

    assert await ledger.get_balance(user.id) == Decimal("200.00")
    assert await WalletTransaction.find(WalletTransaction.type == "debit").count() == 0
    assert await CoursePurchase.find().count() == 0
    # The same purchase goes through once storage recovers.
    out = await purchases.purchase(user.id, course.id)
    assert out["new_balance"] == Decimal("50.00")


async def test_unexpected_error_during_enrollment_rolls_back_everything(make_user, make_course):
    user = await make_user(balance=200)
    course, _ = await make_course(price=150)

    with patch.object(CoursePurchase, "insert", side_effect=RuntimeError("worker crashed")):
        with pytest.raises(RuntimeError):
            await purchases.purchase(user.id, course.id)

    fresh = await User.get(user.id)
    assert fresh.wallet_balance_paise == 20000
    assert fresh.entitled_course_ids == []
    assert fresh.pending_purchases == []
    assert await WalletTransaction.find(WalletTransaction.type == "debit").count() == 0
    assert await purchases.check_purchased(user.id, course.id) is False
    out = await purchases.purchase(user.id, course.id)
    assert out["new_balance"] == Decimal("50.00")


async def test_cancelled_free_enrollment_releases_marker(make_user, make_course):
    user = await make_user()
    course, _ = await make_course(price=0)

    with patch.object(CoursePurchase, "insert", side_effect=asyncio.CancelledError()):
        with pytest.raises(asyncio.CancelledError):
            await purchases.purchase(user.id, course.id)

    fresh = await User.get(user.id)
    assert fresh.entitled_course_ids == []
    assert fresh.pending_purchases == []
    assert await purchases.check_purchased(user.id, course.id) is False


def _stale_intent(course, amount_paise=15000):
    return PendingPurchase(
        course_id=course.id,
        purchase_id=PydanticObjectId(),
        transaction_id=str(PydanticObjectId()),
        amount_paise=amount_paise,
        description=f"Course purchase: {course.title}",
        created_at=datetime.utcnow() - timedelta(minutes=5),
    )


async def test_purchase_interrupted_after_debit_is_settled_on_retry(make_user, make_course):
    user = await make_user(balance=200)
    course, _ = await make_course(price=150, title="Graphs")
    # The debit, marker and intent landed; the process died before anything else.
    intent = _stale_intent(course)
    assert await ledger._apply_delta(user.id, -15000, course.id, intent) is True

    assert await purchases.check_purchased(user.id, course.id) is True
    with pytest.raises(AlreadyPurchasedError):
        await purchases.purchase(user.id, course.id)

    fresh = await User.get(user.id)
    assert fresh.wallet_balance_paise == 5000
    assert fresh.pending_purchases == []
    debits = await WalletTransaction.find(WalletTransaction.type == "debit").to_list()
    assert [str(d.id) for d in debits] == [intent.transaction_id]
    assert debits[0].description == "Course purchase: Graphs"
    records = await CoursePurchase.find().to_list()
    assert len(records) == 1
    assert records[0].id == intent.purchase_id
    assert records[0].transaction_id == intent.transaction_id
    assert (await ledger.reconcile(user.id))["consistent"] is True


async def test_purchase_interrupted_before_enrollment_shows_in_list(make_user, make_course):
    user = await make_user(balance=200)
    course, _ = await make_course(price=150, title="Trees")
    purchase_id = PydanticObjectId()
    # Debit entry written, enrollment never stored.
    debit = await ledger.record_transaction(
        user.id, 150, "debit", course_id=course.id, purchase_id=purchase_id
    )

    fresh = await User.get(user.id)
    assert await purchases.settle_pending(fresh) == 0  # may still be in flight
    assert await purchases.settle_pending(fresh, older_than=timedelta(0)) == 1

    rows = await purchases.list_purchases(user.id)
    assert [(p.id, c.title) for p, c in rows] == [(purchase_id, "Trees")]
    assert rows[0][0].transaction_id == str(debit.id)
    assert await WalletTransaction.find(WalletTransaction.type == "debit").count() == 1
    assert (await User.get(user.id)).pending_purchases == []
    assert (await ledger.reconcile(user.id))["consistent"] is True


async def test_unknown_course(make_user):
    user = await make_user()
    with pytest.raises(NotFoundError):
        await purchases.purchase(user.id, PydanticObjectId())


async def test_checkout_partial_failure(make_user, make_course):
    user = await make_user(balance=120)
    cheap, _ = await make_course(price=100, title="Cheap")
    pricey, _ = await make_course(price=100, title="Pricey")
    free, _ = await make_course(price=0, title="Free")

    out = await purchases.purchase_many(
        user.id,
        [str(cheap.id), str(pricey.id), str(free.id), str(cheap.id), "not-an-id"],
    )

    by_id = {r["course_id"]: r for r in out["results"]}
    assert by_id[str(cheap.id)]["ok"] is True
    assert by_id[str(pricey.id)]["ok"] is False
    assert by_id[str(pricey.id)]["error"]["code"] == "INSUFFICIENT_FUNDS"
    assert by_id[str(free.id)]["ok"] is True
    assert by_id["not-an-id"]["error"]["code"] == "NOT_FOUND"
    assert len(out["results"]) == 4
    assert out["succeeded"] == 2
    assert out["failed"] == 2
    assert out["new_balance"] == Decimal("20.00")


async def test_list_purchases_newest_first_with_course(make_user, make_course):
    user = await make_user(balance=500)
    first, _ = await make_course(price=100, title="First")
    second, _ = await make_course(price=0, title="Second")
    await purchases.purchase(user.id, first.id)
    await purchases.purchase(user.id, second.id)

    rows = await purchases.list_purchases(user.id)

    assert [c.title for _, c in rows] == ["Second", "First"]
    data = purchases.serialize_purchase(*rows[1])
    assert data["course"]["title"] == "First"
    assert data["amount"] == Decimal("100.00")
