from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Integer, String, Text

from session_engine.models.base import Base

REQUEST_STATUSES = ("pending", "approved", "rejected")


class SessionRequest(Base):
    __tablename__ = "student_session_requests"
    __table_args__ = (
        CheckConstraint("session_count > 0", name="ck_student_session_requests_count_pos"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(String(64), nullable=False, index=True)
    institution_id = Column(String(64), ForeignKey("institutions.id"), nullable=False)
    department_id = Column(String(64), nullable=False, index=True)
    session_count = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False, default="")
    status = Column(
        Enum(*REQUEST_STATUSES, name="session_request_status"),
        nullable=False,
        default="pending",
    )
    reviewed_by = Column(String(64))
    reviewed_at = Column(DateTime(timezone=True))
    allocation_id = Column(Integer, ForeignKey("session_allocations.id", ondelete="SET NULL"))
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}


__all__ = ["REQUEST_STATUSES", "SessionRequest"]
