from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from eduhive.deps import get_current_user
from eduhive.models.user import User
from eduhive.services import catalog
from eduhive.services import purchases as purchases_service

router = APIRouter()


class CheckoutRequest(BaseModel):
    course_ids: list[str] = Field(..., min_length=1, max_length=50)


@router.post("/courses/{course_id}/purchase")
async def course_purchase(course_id: str, user: User = Depends(get_current_user)):
    """Buy (or enroll in, when free) a course with the wallet balance."""
    out = await purchases_service.purchase(user.id, catalog.parse_id(course_id, "Course"))
    return {
        "message": "Course purchased successfully",
        "purchase": purchases_service.serialize_purchase(out["purchase"]),
        "new_balance": out["new_balance"],
    }


@router.get("/courses/{course_id}/purchased")
async def course_purchased(course_id: str, user: User = Depends(get_current_user)):
    purchased = await purchases_service.check_purchased(user.id, catalog.parse_id(course_id, "Course"))
    return {"purchased": purchased}


@router.get("/purchases")
async def purchases_list(user: User = Depends(get_current_user)):
    """Purchased courses, newest first."""
    rows = await purchases_service.list_purchases(user.id)
    return [purchases_service.serialize_purchase(p, course) for p, course in rows]


@router.post("/purchases/checkout")
async def purchases_checkout(body: CheckoutRequest, user: User = Depends(get_current_user)):
    """Cart checkout: per-course results, partial success allowed."""
    return await purchases_service.purchase_many(user.id, body.course_ids)
