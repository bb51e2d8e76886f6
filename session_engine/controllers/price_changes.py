from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from session_engine.dependencies import PLATFORM_ADMIN, Actor, ensure_role, envelope, rate_limit
from session_engine.services import price_changes
from session_engine.services.price_changes import PriceChangePatch
from session_engine.services.transactions import run_in_transaction

router = APIRouter(prefix="/price-changes", tags=["price-changes"])

ChangeType = Literal["vapiCost", "markupPercentage", "licenseCost"]


class PriceChangeRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    change_date: datetime
    change_type: str
    affected: str
    current_value: float
    new_value: float
    status: str
    applied_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PriceChangeCreate(BaseModel):
    change_date: datetime
    change_type: ChangeType
    affected: str = "all"
    current_value: float
    new_value: float


class PriceChangeUpdate(BaseModel):
    change_date: datetime | None = None
    change_type: ChangeType | None = None
    affected: str | None = None
    current_value: float | None = None
    new_value: float | None = None


def _dump(change) -> dict:
    return PriceChangeRecord.model_validate(change).model_dump(mode="json")


@router.get("")
async def list_price_changes(actor: Actor = Depends(rate_limit)):
    ensure_role(actor, PLATFORM_ADMIN)
    data = await asyncio.to_thread(
        run_in_transaction, lambda db: [_dump(c) for c in price_changes.list_changes(db)]
    )
    return envelope(data)


@router.get("/upcoming")
async def list_upcoming_price_changes(actor: Actor = Depends(rate_limit)):
    ensure_role(actor, PLATFORM_ADMIN)
    data = await asyncio.to_thread(
        run_in_transaction, lambda db: [_dump(c) for c in price_changes.list_upcoming(db)]
    )
    return envelope(data)


@router.post("", status_code=201)
async def schedule_price_change(body: PriceChangeCreate, actor: Actor = Depends(rate_limit)):
    ensure_role(actor, PLATFORM_ADMIN)

    def _write(db):
        change = price_changes.schedule(
            db,
            change_date=body.change_date,
            change_type=body.change_type,
            affected=body.affected,
            current_value=body.current_value,
            new_value=body.new_value,
        )
        return _dump(change)

    data = await asyncio.to_thread(run_in_transaction, _write)
    return envelope(data, "Price change scheduled")


@router.patch("/{change_id}")
async def update_price_change(
    change_id: int,
    body: PriceChangeUpdate,
    actor: Actor = Depends(rate_limit),
):
    ensure_role(actor, PLATFORM_ADMIN)
    patch = PriceChangePatch(**body.model_dump())
    data = await asyncio.to_thread(
        run_in_transaction, lambda db: _dump(price_changes.update_change(db, change_id, patch))
    )
    return envelope(data, "Price change updated")


@router.delete("/{change_id}")
async def delete_price_change(change_id: int, actor: Actor = Depends(rate_limit)):
    ensure_role(actor, PLATFORM_ADMIN)
    await asyncio.to_thread(
        run_in_transaction, lambda db: price_changes.delete_change(db, change_id)
    )
    return envelope(None, "Price change deleted")


@router.post("/{change_id}/apply")
async def apply_price_change(change_id: int, actor: Actor = Depends(rate_limit)):
    ensure_role(actor, PLATFORM_ADMIN)
    data = await asyncio.to_thread(
        run_in_transaction, lambda db: _dump(price_changes.apply_change(db, change_id))
    )
    return envelope(data, "Price change applied")


@router.post("/{change_id}/cancel")
async def cancel_price_change(change_id: int, actor: Actor = Depends(rate_limit)):
    ensure_role(actor, PLATFORM_ADMIN)
    data = await asyncio.to_thread(
        run_in_transaction, lambda db: _dump(price_changes.cancel(db, change_id))
    )
    return envelope(data, "Price change cancelled")
