"""Global pricing settings and per-institution overrides.

Readers get immutable snapshots (:class:`PricingSnapshot`,
:class:`OverrideSnapshot`) so price resolution never depends on live ORM
state. Each write to the global row bumps ``version``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from session_engine.config import Settings
from session_engine.errors import NotFound, ValidationError
from session_engine.models import (
    AFFECTS_ALL,
    PRICING_SETTINGS_ID,
    PricingOverride,
    PricingSettings,
)
from session_engine.services import session_pool
from session_engine.services.clock import ensure_utc, utcnow

settings = Settings()
logger = logging.getLogger(__name__)

# change_type -> (global column, override column)
PRICE_FIELDS = {
    "vapiCost": ("vapi_cost_per_minute", "custom_vapi_cost"),
    "markupPercentage": ("markup_percentage", "custom_markup_percentage"),
    "licenseCost": ("annual_license_cost", "custom_license_cost"),
}


@dataclass(frozen=True)
class PricingSnapshot:
    vapi_cost: Decimal
    markup_percentage: Decimal
    license_cost: Decimal
    version: int = 0
    updated_at: datetime | None = None


@dataclass(frozen=True)
class OverrideSnapshot:
    institution_id: str
    vapi_cost: Decimal
    markup_percentage: Decimal
    license_cost: Decimal
    is_enabled: bool
    updated_at: datetime | None = None


def to_decimal(value, field: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} must be a number") from exc
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def validate_price_value(change_type: str, value: Decimal) -> None:
    if change_type == "vapiCost":
        if not settings.min_vapi_cost <= value <= settings.max_vapi_cost:
            raise ValidationError(
                f"VAPI cost must be between {settings.min_vapi_cost} and {settings.max_vapi_cost}"
            )
    elif change_type == "markupPercentage":
        if not settings.min_markup_percentage <= value <= settings.max_markup_percentage:
            raise ValidationError(
                "Markup percentage must be between "
                f"{settings.min_markup_percentage} and {settings.max_markup_percentage}"
            )
    elif change_type == "licenseCost":
        if value < 0:
            raise ValidationError("License cost must not be negative")
    else:
        raise ValidationError(f"Unknown change type {change_type!r}")


def validate_pricing(vapi_cost: Decimal, markup_percentage: Decimal, license_cost: Decimal) -> None:
    validate_price_value("vapiCost", vapi_cost)
    validate_price_value("markupPercentage", markup_percentage)
    validate_price_value("licenseCost", license_cost)


def is_valid_pricing(vapi_cost, markup_percentage, license_cost) -> bool:
    try:
        validate_pricing(
            to_decimal(vapi_cost, "vapi_cost"),
            to_decimal(markup_percentage, "markup_percentage"),
            to_decimal(license_cost, "license_cost"),
        )
    except ValidationError:
        return False
    return True


def default_pricing() -> PricingSnapshot:
    return PricingSnapshot(
        vapi_cost=settings.default_vapi_cost_per_minute,
        markup_percentage=settings.default_markup_percentage,
        license_cost=settings.default_annual_license_cost,
    )


def _snapshot(row: PricingSettings) -> PricingSnapshot:
    return PricingSnapshot(
        vapi_cost=Decimal(row.vapi_cost_per_minute),
        markup_percentage=Decimal(row.markup_percentage),
        license_cost=Decimal(row.annual_license_cost),
        version=row.version,
        updated_at=ensure_utc(row.updated_at),
    )


def _override_snapshot(row: PricingOverride) -> OverrideSnapshot:
    return OverrideSnapshot(
        institution_id=row.institution_id,
        vapi_cost=Decimal(row.custom_vapi_cost),
        markup_percentage=Decimal(row.custom_markup_percentage),
        license_cost=Decimal(row.custom_license_cost),
        is_enabled=bool(row.is_enabled),
        updated_at=ensure_utc(row.updated_at),
    )


def _settings_row(db: Session, *, create: bool = False) -> PricingSettings | None:
    row = (
        db.query(PricingSettings)
        .filter(PricingSettings.id == PRICING_SETTINGS_ID)
        .with_for_update()
        .one_or_none()
    )
    if row is None and create:
        defaults = default_pricing()
        row = PricingSettings(
            id=PRICING_SETTINGS_ID,
            vapi_cost_per_minute=defaults.vapi_cost,
            markup_percentage=defaults.markup_percentage,
            annual_license_cost=defaults.license_cost,
            version=0,
        )
        db.add(row)
    return row


def load_pricing(db: Session) -> PricingSnapshot:
    row = db.get(PricingSettings, PRICING_SETTINGS_ID)
    if row is None:
        return default_pricing()
    return _snapshot(row)


def update_pricing(
    db: Session,
    *,
    vapi_cost,
    markup_percentage,
    license_cost,
) -> PricingSnapshot:
    vapi = to_decimal(vapi_cost, "vapi_cost")
    markup = to_decimal(markup_percentage, "markup_percentage")
    license_value = to_decimal(license_cost, "license_cost")
    validate_pricing(vapi, markup, license_value)

    row = _settings_row(db, create=True)
    row.vapi_cost_per_minute = vapi
    row.markup_percentage = markup
    row.annual_license_cost = license_value
    row.version = (row.version or 0) + 1
    row.updated_at = utcnow()
    db.flush()
    logger.info(
        "audit: global pricing v%d vapi=%s markup=%s license=%s",
        row.version,
        vapi,
        markup,
        license_value,
    )
    return _snapshot(row)


def get_override(db: Session, institution_id: str) -> OverrideSnapshot | None:
    row = db.get(PricingOverride, institution_id)
    return _override_snapshot(row) if row is not None else None


def set_override(
    db: Session,
    institution_id: str,
    *,
    vapi_cost,
    markup_percentage,
    license_cost,
    is_enabled: bool = True,
) -> OverrideSnapshot:
    session_pool.require_institution(db, institution_id)
    vapi = to_decimal(vapi_cost, "vapi_cost")
    markup = to_decimal(markup_percentage, "markup_percentage")
    license_value = to_decimal(license_cost, "license_cost")
    if is_enabled:
        validate_pricing(vapi, markup, license_value)

    row = db.get(PricingOverride, institution_id)
    if row is None:
        row = PricingOverride(institution_id=institution_id)
        db.add(row)
    row.custom_vapi_cost = vapi
    row.custom_markup_percentage = markup
    row.custom_license_cost = license_value
    row.is_enabled = bool(is_enabled)
    row.updated_at = utcnow()
    db.flush()
    logger.info(
        "audit: pricing override institution=%s enabled=%s vapi=%s markup=%s",
        institution_id,
        row.is_enabled,
        vapi,
        markup,
        extra={"institution_id": institution_id},
    )
    return _override_snapshot(row)


def set_override_enabled(db: Session, institution_id: str, enabled: bool) -> OverrideSnapshot:
    row = db.get(PricingOverride, institution_id)
    if row is None:
        raise NotFound(f"No pricing override for institution {institution_id}")
    if enabled:
        validate_pricing(
            Decimal(row.custom_vapi_cost),
            Decimal(row.custom_markup_percentage),
            Decimal(row.custom_license_cost),
        )
    row.is_enabled = bool(enabled)
    row.updated_at = utcnow()
    db.flush()
    return _override_snapshot(row)


def delete_override(db: Session, institution_id: str) -> None:
    row = db.get(PricingOverride, institution_id)
    if row is None:
        raise NotFound(f"No pricing override for institution {institution_id}")
    db.delete(row)
    db.flush()


def list_overrides(db: Session) -> list[OverrideSnapshot]:
    rows = db.query(PricingOverride).order_by(PricingOverride.institution_id).all()
    return [_override_snapshot(row) for row in rows]


def cleanup_invalid_overrides(db: Session) -> int:
    """Disable enabled overrides whose values fall outside the pricing bounds."""
    disabled = 0
    rows = db.query(PricingOverride).filter(PricingOverride.is_enabled.is_(True)).all()
    for row in rows:
        if is_valid_pricing(row.custom_vapi_cost, row.custom_markup_percentage, row.custom_license_cost):
            continue
        row.is_enabled = False
        row.updated_at = utcnow()
        disabled += 1
        logger.warning(
            "disabled invalid pricing override institution=%s",
            row.institution_id,
            extra={"institution_id": row.institution_id},
        )
    db.flush()
    return disabled


def write_price_field(db: Session, affected: str, change_type: str, value: Decimal) -> None:
    """Write one pricing field for everyone or for a single institution.

    An institution without an override gets one seeded from the current
    global values and enabled, so the change takes effect.
    """
    if change_type not in PRICE_FIELDS:
        raise ValidationError(f"Unknown change type {change_type!r}")
    global_column, override_column = PRICE_FIELDS[change_type]
    if affected == AFFECTS_ALL:
        row = _settings_row(db, create=True)
        setattr(row, global_column, value)
        row.version = (row.version or 0) + 1
        row.updated_at = utcnow()
    else:
        session_pool.require_institution(db, affected)
        row = db.get(PricingOverride, affected)
        if row is None:
            current = load_pricing(db)
            row = PricingOverride(
                institution_id=affected,
                custom_vapi_cost=current.vapi_cost,
                custom_markup_percentage=current.markup_percentage,
                custom_license_cost=current.license_cost,
                is_enabled=True,
            )
            db.add(row)
        setattr(row, override_column, value)
        row.updated_at = utcnow()
    db.flush()


__all__ = [
    "OverrideSnapshot",
    "PRICE_FIELDS",
    "PricingSnapshot",
    "cleanup_invalid_overrides",
    "default_pricing",
    "delete_override",
    "get_override",
    "is_valid_pricing",
    "list_overrides",
    "load_pricing",
    "set_override",
    "set_override_enabled",
    "to_decimal",
    "update_pricing",
    "validate_price_value",
    "validate_pricing",
    "write_price_field",
]
