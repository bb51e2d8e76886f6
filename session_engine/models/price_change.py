from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, Integer, Numeric, String

from session_engine.models.base import Base

CHANGE_TYPES = ("vapiCost", "markupPercentage", "licenseCost")
CHANGE_STATUSES = ("scheduled", "applied", "cancelled")
AFFECTS_ALL = "all"


class ScheduledPriceChange(Base):
    __tablename__ = "scheduled_price_changes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    change_date = Column(DateTime(timezone=True), nullable=False, index=True)
    change_type = Column(Enum(*CHANGE_TYPES, name="price_change_type"), nullable=False)
    # "all" or an institution id
    affected = Column(String(64), nullable=False, default=AFFECTS_ALL)
    current_value = Column(Numeric(10, 4), nullable=False)
    new_value = Column(Numeric(10, 4), nullable=False)
    status = Column(
        Enum(*CHANGE_STATUSES, name="price_change_status"),
        nullable=False,
        default="scheduled",
    )
    applied_at = Column(DateTime(timezone=True))
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}


__all__ = ["AFFECTS_ALL", "CHANGE_STATUSES", "CHANGE_TYPES", "ScheduledPriceChange"]
