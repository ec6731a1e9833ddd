"""Course purchase: wallet debit and enrollment as one unit, at most once per user and course.

The debit, the entitlement marker and a PendingPurchase intent land in one update on
the user. The ledger entry and the enrollment follow; if the process dies in between,
settle_pending finishes the unit from the intent on the user's next purchase call.
"""

import time
from datetime import datetime, timedelta
from typing import Any

from beanie import PydanticObjectId, SortDirection
from pymongo.errors import DuplicateKeyError

from eduhive.core.audit import log_event
from eduhive.core.config import get_settings
from eduhive.core.exceptions import AlreadyPurchasedError, AppError, NotFoundError
from eduhive.core.logging import get_logger
from eduhive.core.money import from_paise
from eduhive.models.course import Course
from eduhive.models.course_purchase import CoursePurchase
from eduhive.models.user import PendingPurchase, User
from eduhive.models.wallet_transaction import WalletTransaction
from eduhive.services import catalog, ledger

log = get_logger(__name__)


async def get_purchase(user_id: PydanticObjectId, course_id: PydanticObjectId) -> CoursePurchase | None:
    return await CoursePurchase.find_one(
        CoursePurchase.user_id == user_id,
        CoursePurchase.course_id == course_id,
        CoursePurchase.status == "completed",
    )


async def check_purchased(user_id: PydanticObjectId, course_id: PydanticObjectId) -> bool:
    """
    True once the course is paid for. The entitlement marker is written in the same
    update as the debit, so it counts even before the enrollment row exists.
    """
    if await get_purchase(user_id, course_id) is not None:
        return True
    user = await User.get(user_id)
    return user is not None and course_id in user.entitled_course_ids


async def _mark_entitled(user_id: PydanticObjectId, intent: PendingPurchase) -> bool:
    result = await User.get_motor_collection().update_one(
        {"_id": user_id, "entitled_course_ids": {"$ne": intent.course_id}},
        {
            "$addToSet": {"entitled_course_ids": intent.course_id},
            "$push": {"pending_purchases": intent.model_dump()},
            "$set": {"updated_at": datetime.utcnow()},
        },
    )
    return result.matched_count == 1


async def _unmark_entitled(user_id: PydanticObjectId, course_id: PydanticObjectId) -> None:
    await User.get_motor_collection().update_one(
        {"_id": user_id},
        {"$pull": {"entitled_course_ids": course_id, "pending_purchases": {"course_id": course_id}}},
    )


async def _store_enrollment(record: CoursePurchase) -> bool:
    """
    Insert the enrollment. Returns False when another one for the same user and
    course already exists; True when this record (or its recovered copy) is stored.
    """
    try:
        await record.insert()
    except DuplicateKeyError:
        return await CoursePurchase.get(record.id) is not None
    return True


async def _enroll_free(user: User, course: Course) -> CoursePurchase:
    record = CoursePurchase(
        id=PydanticObjectId(),
        user_id=user.id,
        course_id=course.id,
        amount_paise=0,
        transaction_id=f"FREE-{int(time.time() * 1000)}",
    )
    intent = PendingPurchase(
        course_id=course.id,
        purchase_id=record.id,
        transaction_id=record.transaction_id,
        created_at=record.created_at,
    )
    if not await _mark_entitled(user.id, intent):
        raise AlreadyPurchasedError(str(course.id))
    try:
        stored = await _store_enrollment(record)
    except BaseException:
        await _unmark_entitled(user.id, course.id)
        raise
    await ledger.clear_intent(user.id, course.id)
    if not stored:
        raise AlreadyPurchasedError(str(course.id))
    return record


async def _buy(user: User, course: Course) -> CoursePurchase:
    purchase_id = PydanticObjectId()
    debit = await ledger.record_transaction(
        user.id,
        catalog.course_price(course),
        "debit",
        status="completed",
        description=f"Course purchase: {course.title}",
        course_id=course.id,
        purchase_id=purchase_id,
    )
    record = CoursePurchase(
        id=purchase_id,
        user_id=user.id,
        course_id=course.id,
        amount_paise=debit.amount_paise,
        transaction_id=str(debit.id),
        created_at=debit.created_at,
    )
    try:
        stored = await _store_enrollment(record)
    except BaseException:
        await ledger.reverse_entry(debit)
        raise
    if not stored:
        await ledger.reverse_entry(debit)
        raise AlreadyPurchasedError(str(course.id))
    await ledger.clear_intent(user.id, course.id)
    return record


async def settle_pending(user: User, older_than: timedelta | None = None) -> int:
    """
    Finish purchases whose worker stopped after the debit was applied: store the
    missing ledger entry and enrollment from the intent, then drop the intent.
    Intents younger than older_than may still be in flight and are left alone.
    Returns the number of purchases finished.
    """
    if older_than is None:
        older_than = timedelta(seconds=get_settings().purchase_settle_after_seconds)
    cutoff = datetime.utcnow() - older_than
    settled = 0
    for intent in user.pending_purchases:
        if intent.created_at > cutoff:
            continue
        if intent.amount_paise > 0:
            try:
                await WalletTransaction(
                    id=PydanticObjectId(intent.transaction_id),
                    user_id=user.id,
                    amount_paise=intent.amount_paise,
                    type="debit",
                    status="completed",
                    description=intent.description,
                    course_id=intent.course_id,
                    created_at=intent.created_at,
                ).insert()
            except DuplicateKeyError:
                pass
        try:
            await CoursePurchase(
                id=intent.purchase_id,
                user_id=user.id,
                course_id=intent.course_id,
                amount_paise=intent.amount_paise,
                transaction_id=intent.transaction_id,
                created_at=intent.created_at,
            ).insert()
        except DuplicateKeyError:
            pass
        await ledger.clear_intent(user.id, intent.course_id)
        settled += 1
        log.warning(
            "purchase_settled",
            user_id=str(user.id),
            course_id=str(intent.course_id),
            purchase_id=str(intent.purchase_id),
            amount_paise=intent.amount_paise,
        )
    return settled


async def purchase(user_id: PydanticObjectId, course_id: PydanticObjectId) -> dict[str, Any]:
    """
    Grant access to a course, charging the wallet for paid courses.
    Returns {"purchase", "new_balance"}. Retrying after success raises
    AlreadyPurchasedError and never charges twice.
    """
    course = await catalog.get_course(course_id)
    user = await User.get(user_id)
    if not user:
        raise NotFoundError("User not found")
    if user.pending_purchases:
        await settle_pending(user)
    if await check_purchased(user_id, course.id):
        raise AlreadyPurchasedError(str(course.id))

    if catalog.is_free(course):
        record = await _enroll_free(user, course)
    else:
        record = await _buy(user, course)
    new_balance = await ledger.get_balance(user_id)

    await log_event(
        str(user_id),
        "purchase_completed",
        "course_purchase",
        str(record.id),
        {"course_id": str(course.id), "amount_paise": record.amount_paise, "transaction_id": record.transaction_id},
    )
    log.info(
        "purchase_completed",
        user_id=str(user_id),
        course_id=str(course.id),
        amount_paise=record.amount_paise,
        free=record.amount_paise == 0,
    )
    return {"purchase": record, "new_balance": new_balance}


async def purchase_many(user_id: PydanticObjectId, course_ids: list[str]) -> dict[str, Any]:
    """
    Cart checkout. Each course is bought on its own; a failure is reported in its
    result entry and does not undo or block the others.
    """
    results = []
    seen: set[str] = set()
    for raw_id in course_ids:
        if raw_id in seen:
            continue
        seen.add(raw_id)
        try:
            out = await purchase(user_id, catalog.parse_id(raw_id, "Course"))
        except AppError as e:
            results.append({"course_id": raw_id, "ok": False, "error": e.to_dict()})
            continue
        results.append({"course_id": raw_id, "ok": True, "purchase": serialize_purchase(out["purchase"])})
    succeeded = sum(1 for r in results if r["ok"])
    log.info("checkout_finished", user_id=str(user_id), succeeded=succeeded, failed=len(results) - succeeded)
    return {
        "results": results,
        "succeeded": succeeded,
        "failed": len(results) - succeeded,
        "new_balance": await ledger.get_balance(user_id),
    }


async def list_purchases(user_id: PydanticObjectId) -> list[tuple[CoursePurchase, Course | None]]:
    """Completed purchases newest first, each with its course (None if since removed)."""
    user = await User.get(user_id)
    if user and user.pending_purchases:
        await settle_pending(user)
    purchases = await CoursePurchase.find(
        CoursePurchase.user_id == user_id,
        CoursePurchase.status == "completed",
    ).sort([("created_at", SortDirection.DESCENDING), ("_id", SortDirection.DESCENDING)]).to_list()
    ids = list({p.course_id for p in purchases})
    courses = await Course.find({"_id": {"$in": ids}}).to_list() if ids else []
    by_id = {c.id: c for c in courses}
    return [(p, by_id.get(p.course_id)) for p in purchases]


def serialize_purchase(p: CoursePurchase, course: Course | None = None) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": str(p.id),
        "course_id": str(p.course_id),
        "amount": from_paise(p.amount_paise),
        "status": p.status,
        "transaction_id": p.transaction_id,
        "created_at": p.created_at.isoformat(),
    }
    if course is not None:
        out["course"] = catalog.serialize_course(course)
    return out
