from __future__ import annotations

import asyncio
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from session_engine.dependencies import (
    INSTITUTION_ADMIN,
    PLATFORM_ADMIN,
    Actor,
    ensure_role,
    envelope,
    rate_limit,
    resolve_institution,
)
from session_engine.services import purchases
from session_engine.services.transactions import run_in_transaction

router = APIRouter(prefix="/session-purchases", tags=["session-purchases"])


class PurchaseRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    institution_id: str
    session_count: int
    price_per_session: float
    total_amount: float
    payment_id: str | None = None
    pricing_version: int | None = None
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PurchaseCreate(BaseModel):
    institution_id: str | None = None
    session_count: int


class PurchaseComplete(BaseModel):
    payment_id: str


def _dump(purchase) -> dict:
    return PurchaseRecord.model_validate(purchase).model_dump(mode="json")


@router.get("")
async def list_purchases(institution_id: str | None = None, actor: Actor = Depends(rate_limit)):
    ensure_role(actor, INSTITUTION_ADMIN)
    target = resolve_institution(actor, institution_id)
    data = await asyncio.to_thread(
        run_in_transaction, lambda db: [_dump(p) for p in purchases.list_purchases(db, target)]
    )
    return envelope(data)


@router.post("", status_code=201)
async def create_purchase(body: PurchaseCreate, actor: Actor = Depends(rate_limit)):
    ensure_role(actor, INSTITUTION_ADMIN)
    target = resolve_institution(actor, body.institution_id)
    data = await asyncio.to_thread(
        run_in_transaction,
        lambda db: _dump(purchases.create_purchase(db, target, body.session_count)),
    )
    return envelope(data, "Session purchase created successfully")


@router.post("/{purchase_id}/complete")
async def complete_purchase(
    purchase_id: int,
    body: PurchaseComplete,
    actor: Actor = Depends(rate_limit),
):
    ensure_role(actor, PLATFORM_ADMIN)
    data = await asyncio.to_thread(
        run_in_transaction,
        lambda db: _dump(purchases.complete_purchase(db, purchase_id, body.payment_id)),
    )
    return envelope(data, "Session purchase completed")


@router.post("/{purchase_id}/fail")
async def fail_purchase(purchase_id: int, actor: Actor = Depends(rate_limit)):
    ensure_role(actor, PLATFORM_ADMIN)
    data = await asyncio.to_thread(
        run_in_transaction, lambda db: _dump(purchases.fail_purchase(db, purchase_id))
    )
    return envelope(data, "Session purchase marked as failed")


@router.post("/{purchase_id}/refund")
async def refund_purchase(purchase_id: int, actor: Actor = Depends(rate_limit)):
    ensure_role(actor, PLATFORM_ADMIN)
    data = await asyncio.to_thread(
        run_in_transaction, lambda db: _dump(purchases.refund_purchase(db, purchase_id))
    )
    return envelope(data, "Session purchase refunded")
