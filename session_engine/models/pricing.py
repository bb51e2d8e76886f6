"""Global pricing singleton and per-institution overrides."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String

from session_engine.models.base import Base

PRICING_SETTINGS_ID = 1


class PricingSettings(Base):
    __tablename__ = "pricing_settings"

    id = Column(Integer, primary_key=True, default=PRICING_SETTINGS_ID)
    vapi_cost_per_minute = Column(Numeric(10, 4), nullable=False)
    markup_percentage = Column(Numeric(6, 2), nullable=False)
    annual_license_cost = Column(Numeric(10, 2), nullable=False)
    # bumped on every write so readers can tell which settings priced a charge
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


class PricingOverride(Base):
    __tablename__ = "institution_pricing_overrides"

    institution_id = Column(String(64), ForeignKey("institutions.id"), primary_key=True)
    custom_vapi_cost = Column(Numeric(10, 4), nullable=False)
    custom_markup_percentage = Column(Numeric(6, 2), nullable=False)
    custom_license_cost = Column(Numeric(10, 2), nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


__all__ = ["PRICING_SETTINGS_ID", "PricingSettings", "PricingOverride"]
