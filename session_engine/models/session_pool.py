from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String

from session_engine.models.base import Base


class SessionPool(Base):
    """Purchased interview-session capacity of one institution."""

    __tablename__ = "session_pools"
    __table_args__ = (
        CheckConstraint("total_sessions >= 0", name="ck_session_pools_total_nonneg"),
        CheckConstraint("used_sessions >= 0", name="ck_session_pools_used_nonneg"),
        CheckConstraint("used_sessions <= total_sessions", name="ck_session_pools_used_le_total"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    institution_id = Column(
        String(64), ForeignKey("institutions.id"), nullable=False, unique=True
    )
    total_sessions = Column(Integer, nullable=False, default=0)
    # reserved-to-date: every allocation reserves against this counter
    used_sessions = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def available_sessions(self) -> int:
        return (self.total_sessions or 0) - (self.used_sessions or 0)


__all__ = ["SessionPool"]
