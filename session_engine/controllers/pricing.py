from __future__ import annotations

import asyncio
from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from session_engine.dependencies import (
    PLATFORM_ADMIN,
    Actor,
    ensure_role,
    envelope,
    rate_limit,
    resolve_institution,
)
from session_engine.errors import NotFound
from session_engine.services import price_resolver, pricing_store
from session_engine.services.transactions import run_in_transaction

router = APIRouter(prefix="/pricing", tags=["pricing"])


class PricingRecord(BaseModel):
    vapi_cost: float
    markup_percentage: float
    license_cost: float
    version: int
    updated_at: datetime | None = None
    session_minute_price: float


class OverrideRecord(BaseModel):
    institution_id: str
    vapi_cost: float
    markup_percentage: float
    license_cost: float
    is_enabled: bool
    updated_at: datetime | None = None


class EffectivePriceRecord(BaseModel):
    institution_id: str | None = None
    vapi_cost: float
    markup_percentage: float
    license_cost: float
    session_minute_price: float
    source: str
    pricing_version: int
    as_of: datetime


class PricingUpdateRequest(BaseModel):
    vapi_cost: float
    markup_percentage: float
    license_cost: float


class OverrideUpdateRequest(BaseModel):
    vapi_cost: float
    markup_percentage: float
    license_cost: float
    is_enabled: bool = True


def _pricing(snapshot) -> dict:
    return PricingRecord(
        **asdict(snapshot),
        session_minute_price=price_resolver.session_minute_price(
            snapshot.vapi_cost, snapshot.markup_percentage
        ),
    ).model_dump(mode="json")


def _override(snapshot) -> dict:
    return OverrideRecord(**asdict(snapshot)).model_dump(mode="json")


@router.get("")
async def get_pricing(actor: Actor = Depends(rate_limit)):
    ensure_role(actor, PLATFORM_ADMIN)
    data = await asyncio.to_thread(
        run_in_transaction, lambda db: _pricing(pricing_store.load_pricing(db))
    )
    return envelope(data)


@router.put("")
async def update_pricing(body: PricingUpdateRequest, actor: Actor = Depends(rate_limit)):
    ensure_role(actor, PLATFORM_ADMIN)

    def _write(db):
        snapshot = pricing_store.update_pricing(
            db,
            vapi_cost=body.vapi_cost,
            markup_percentage=body.markup_percentage,
            license_cost=body.license_cost,
        )
        return _pricing(snapshot)

    data = await asyncio.to_thread(run_in_transaction, _write)
    return envelope(data, "Pricing settings updated")


@router.get("/effective")
async def get_effective_price(
    institution_id: str | None = None,
    as_of: datetime | None = None,
    actor: Actor = Depends(rate_limit),
):
    target = resolve_institution(actor, institution_id)

    def _read(db):
        price = price_resolver.get_effective_price(db, target, as_of)
        return EffectivePriceRecord(**asdict(price)).model_dump(mode="json")

    data = await asyncio.to_thread(run_in_transaction, _read)
    return envelope(data)


@router.get("/overrides")
async def list_overrides(actor: Actor = Depends(rate_limit)):
    ensure_role(actor, PLATFORM_ADMIN)
    data = await asyncio.to_thread(
        run_in_transaction,
        lambda db: [_override(o) for o in pricing_store.list_overrides(db)],
    )
    return envelope(data)


@router.post("/overrides/cleanup")
async def cleanup_overrides(actor: Actor = Depends(rate_limit)):
    ensure_role(actor, PLATFORM_ADMIN)
    disabled = await asyncio.to_thread(run_in_transaction, pricing_store.cleanup_invalid_overrides)
    return envelope({"disabled": disabled}, f"Disabled {disabled} invalid overrides")


@router.get("/overrides/{institution_id}")
async def get_override(institution_id: str, actor: Actor = Depends(rate_limit)):
    ensure_role(actor, PLATFORM_ADMIN)

    def _read(db):
        snapshot = pricing_store.get_override(db, institution_id)
        if snapshot is None:
            raise NotFound(f"No pricing override for institution {institution_id}")
        return _override(snapshot)

    data = await asyncio.to_thread(run_in_transaction, _read)
    return envelope(data)


@router.put("/overrides/{institution_id}")
async def put_override(
    institution_id: str,
    body: OverrideUpdateRequest,
    actor: Actor = Depends(rate_limit),
):
    ensure_role(actor, PLATFORM_ADMIN)

    def _write(db):
        snapshot = pricing_store.set_override(
            db,
            institution_id,
            vapi_cost=body.vapi_cost,
            markup_percentage=body.markup_percentage,
            license_cost=body.license_cost,
            is_enabled=body.is_enabled,
        )
        return _override(snapshot)

    data = await asyncio.to_thread(run_in_transaction, _write)
    return envelope(data, "Pricing override saved")


@router.delete("/overrides/{institution_id}")
async def delete_override(institution_id: str, actor: Actor = Depends(rate_limit)):
    ensure_role(actor, PLATFORM_ADMIN)
    await asyncio.to_thread(
        run_in_transaction, lambda db: pricing_store.delete_override(db, institution_id)
    )
    return envelope(None, "Pricing override deleted")
