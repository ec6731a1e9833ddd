from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from eduhive.deps import get_current_user
from eduhive.models.user import User
from eduhive.services import ledger
from eduhive.services import topups as topups_service

router = APIRouter()


class TopUpRequest(BaseModel):
    amount: Decimal
    utr_number: str = Field(..., min_length=1, max_length=64)
    description: str | None = Field(default=None, max_length=200)


@router.get("/balance")
async def wallet_balance(user: User = Depends(get_current_user)):
    """Return current wallet balance."""
    return {"balance": await ledger.get_balance(user.id)}


@router.get("/transactions")
async def wallet_transactions(
    user: User = Depends(get_current_user),
    limit: int | None = Query(None, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """Return wallet transactions for current user (newest first)."""
    entries = await ledger.list_transactions(user.id, limit=limit, offset=offset)
    return [ledger.serialize_transaction(e) for e in entries]


@router.post("/topup")
async def wallet_topup(body: TopUpRequest, user: User = Depends(get_current_user)):
    """Submit a UPI payment reference; the credit lands after admin approval."""
    entry = await topups_service.request_top_up(user.id, body.amount, body.utr_number, body.description)
    return ledger.serialize_transaction(entry)


@router.get("/topup/info")
async def wallet_topup_info(user: User = Depends(get_current_user)):
    """Where to send the UPI payment before submitting the UTR."""
    return topups_service.top_up_instructions()
