"""Effective per-minute price for an institution.

Resolution is a pure function of the global snapshot and the institution's
override; scheduled price changes only matter once they have been applied.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.orm import Session

from session_engine.services import pricing_store
from session_engine.services.clock import ensure_utc, utcnow
from session_engine.services.pricing_store import OverrideSnapshot, PricingSnapshot

CENT = Decimal("0.01")
HUNDRED = Decimal(100)


@dataclass(frozen=True)
class EffectivePrice:
    institution_id: str | None
    vapi_cost: Decimal
    markup_percentage: Decimal
    license_cost: Decimal
    session_minute_price: Decimal
    source: str
    pricing_version: int
    as_of: datetime


def round_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def session_minute_price(vapi_cost: Decimal, markup_percentage: Decimal) -> Decimal:
    """``vapi_cost * (1 + markup/100)`` rounded half-up to cents."""
    return round_cents(Decimal(vapi_cost) * (1 + Decimal(markup_percentage) / HUNDRED))


def resolve_effective_price(
    settings: PricingSnapshot,
    override: OverrideSnapshot | None,
    as_of: datetime,
    institution_id: str | None = None,
) -> EffectivePrice:
    if override is not None and override.is_enabled:
        # all three fields come from the override, never a mix
        vapi, markup, license_cost = (
            override.vapi_cost,
            override.markup_percentage,
            override.license_cost,
        )
        source = "override"
    else:
        vapi, markup, license_cost = (
            settings.vapi_cost,
            settings.markup_percentage,
            settings.license_cost,
        )
        source = "global"
    return EffectivePrice(
        institution_id=institution_id,
        vapi_cost=vapi,
        markup_percentage=markup,
        license_cost=license_cost,
        session_minute_price=session_minute_price(vapi, markup),
        source=source,
        pricing_version=settings.version,
        as_of=as_of,
    )


def get_effective_price(
    db: Session, institution_id: str | None, as_of: datetime | None = None
) -> EffectivePrice:
    snapshot = pricing_store.load_pricing(db)
    override = pricing_store.get_override(db, institution_id) if institution_id else None
    return resolve_effective_price(
        snapshot,
        override,
        ensure_utc(as_of) or utcnow(),
        institution_id=institution_id,
    )


def price_per_session(price: EffectivePrice, session_length_minutes: int) -> Decimal:
    return round_cents(price.session_minute_price * session_length_minutes)


__all__ = [
    "EffectivePrice",
    "get_effective_price",
    "price_per_session",
    "resolve_effective_price",
    "round_cents",
    "session_minute_price",
]
