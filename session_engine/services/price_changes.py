"""Future-dated pricing changes.

A change is recorded as ``scheduled`` and takes effect only when
:func:`apply_change` runs, either from the admin API or from
``scripts/apply_price_changes.py``, which applies each id from
:func:`list_due` in its own transaction.
``current_value`` is the value the admin saw when scheduling; it is kept as
a record and not checked against live settings.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from session_engine.errors import InvalidTransition, NotFound, ValidationError
from session_engine.metrics import price_change_applied_total
from session_engine.models import AFFECTS_ALL, CHANGE_TYPES, ScheduledPriceChange
from session_engine.services import pricing_store, session_pool
from session_engine.services.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceChangePatch:
    change_date: datetime | None = None
    change_type: str | None = None
    affected: str | None = None
    current_value: Decimal | float | None = None
    new_value: Decimal | float | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


def _validate_target(db: Session, change_type: str, affected: str) -> None:
    if change_type not in CHANGE_TYPES:
        raise ValidationError(f"change_type must be one of {', '.join(CHANGE_TYPES)}")
    if not affected:
        raise ValidationError("affected is required")
    if affected != AFFECTS_ALL:
        session_pool.require_institution(db, affected)


def schedule(
    db: Session,
    *,
    change_date: datetime,
    change_type: str,
    affected: str,
    current_value,
    new_value,
    now: datetime | None = None,
) -> ScheduledPriceChange:
    now = ensure_utc(now) or utcnow()
    when = ensure_utc(change_date)
    if when is None:
        raise ValidationError("change_date is required")
    if when <= now:
        raise ValidationError("change_date must be in the future")
    _validate_target(db, change_type, affected)
    current = pricing_store.to_decimal(current_value, "current_value")
    new = pricing_store.to_decimal(new_value, "new_value")
    pricing_store.validate_price_value(change_type, new)

    change = ScheduledPriceChange(
        change_date=when,
        change_type=change_type,
        affected=affected,
        current_value=current,
        new_value=new,
        status="scheduled",
    )
    db.add(change)
    db.flush()
    logger.info(
        "audit: price change scheduled id=%s %s %s -> %s for %s at %s",
        change.id,
        change_type,
        current,
        new,
        affected,
        when.isoformat(),
        extra={"change_id": change.id},
    )
    return change


def get_change(db: Session, change_id: int, *, for_update: bool = False) -> ScheduledPriceChange:
    query = db.query(ScheduledPriceChange).filter(ScheduledPriceChange.id == change_id)
    if for_update:
        query = query.with_for_update()
    change = query.one_or_none()
    if change is None:
        raise NotFound(f"Scheduled price change {change_id} not found")
    return change


def apply_change(db: Session, change_id: int, now: datetime | None = None) -> ScheduledPriceChange:
    change = get_change(db, change_id, for_update=True)
    if change.status != "scheduled":
        raise InvalidTransition(change.status, "applied")
    pricing_store.write_price_field(
        db, change.affected, change.change_type, Decimal(change.new_value)
    )
    change.status = "applied"
    change.applied_at = ensure_utc(now) or utcnow()
    db.flush()
    price_change_applied_total.labels(change_type=change.change_type).inc()
    logger.info(
        "audit: price change applied id=%s %s=%s for %s",
        change.id,
        change.change_type,
        change.new_value,
        change.affected,
        extra={"change_id": change.id},
    )
    return change


def list_due(db: Session, now: datetime | None = None) -> list[int]:
    """Ids of scheduled changes whose date has passed, oldest first."""
    now = ensure_utc(now) or utcnow()
    rows = (
        db.query(ScheduledPriceChange.id)
        .filter(
            ScheduledPriceChange.status == "scheduled",
            ScheduledPriceChange.change_date <= now,
        )
        .order_by(ScheduledPriceChange.change_date, ScheduledPriceChange.id)
        .all()
    )
    return [change_id for (change_id,) in rows]


def apply_due(db: Session, now: datetime | None = None) -> list[int]:
    """Apply every due change inside the caller's transaction."""
    now = ensure_utc(now) or utcnow()
    applied = []
    for change_id in list_due(db, now):
        apply_change(db, change_id, now=now)
        applied.append(change_id)
    return applied


def cancel(db: Session, change_id: int) -> ScheduledPriceChange:
    change = get_change(db, change_id, for_update=True)
    if change.status != "scheduled":
        raise InvalidTransition(change.status, "cancelled")
    change.status = "cancelled"
    db.flush()
    logger.info("audit: price change cancelled id=%s", change.id, extra={"change_id": change.id})
    return change


def update_change(db: Session, change_id: int, patch: PriceChangePatch) -> ScheduledPriceChange:
    """Edit a change in any status; ``status`` itself only moves via apply/cancel."""
    if patch.is_empty():
        raise ValidationError("No valid fields to update")
    change = get_change(db, change_id, for_update=True)
    change_type = patch.change_type if patch.change_type is not None else change.change_type
    affected = patch.affected if patch.affected is not None else change.affected
    if patch.change_type is not None or patch.affected is not None:
        _validate_target(db, change_type, affected)

    if patch.change_date is not None:
        change.change_date = ensure_utc(patch.change_date)
    if patch.change_type is not None:
        change.change_type = patch.change_type
    if patch.affected is not None:
        change.affected = patch.affected
    if patch.current_value is not None:
        change.current_value = pricing_store.to_decimal(patch.current_value, "current_value")
    if patch.new_value is not None or patch.change_type is not None:
        new = (
            pricing_store.to_decimal(patch.new_value, "new_value")
            if patch.new_value is not None
            else Decimal(change.new_value)
        )
        pricing_store.validate_price_value(change_type, new)
        change.new_value = new
    db.flush()
    if change.status != "scheduled":
        logger.warning(
            "price change %s edited after it was %s", change.id, change.status,
            extra={"change_id": change.id},
        )
    return change


def delete_change(db: Session, change_id: int) -> None:
    change = get_change(db, change_id, for_update=True)
    db.delete(change)
    db.flush()
    logger.info("audit: price change deleted id=%s", change_id, extra={"change_id": change_id})


def list_changes(db: Session) -> list[ScheduledPriceChange]:
    return (
        db.query(ScheduledPriceChange)
        .order_by(ScheduledPriceChange.change_date.asc(), ScheduledPriceChange.id.asc())
        .all()
    )


def list_upcoming(db: Session) -> list[ScheduledPriceChange]:
    return (
        db.query(ScheduledPriceChange)
        .filter(ScheduledPriceChange.status == "scheduled")
        .order_by(ScheduledPriceChange.change_date.asc(), ScheduledPriceChange.id.asc())
        .all()
    )


__all__ = [
    "PriceChangePatch",
    "apply_change",
    "apply_due",
    "cancel",
    "delete_change",
    "get_change",
    "list_changes",
    "list_due",
    "list_upcoming",
    "schedule",
    "update_change",
]
