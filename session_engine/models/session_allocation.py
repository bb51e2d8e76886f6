from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
)

from session_engine.models.base import Base

ALLOCATION_TYPES = ("department", "teacher", "student")


class SessionAllocation(Base):
    """Slice of a session pool granted to a department, teacher or student."""

    __tablename__ = "session_allocations"
    __table_args__ = (
        CheckConstraint("allocated_count > 0", name="ck_session_allocations_allocated_pos"),
        CheckConstraint("used_count >= 0", name="ck_session_allocations_used_nonneg"),
        CheckConstraint("used_count <= allocated_count", name="ck_session_allocations_used_le_allocated"),
        Index("ix_session_allocations_pool", "session_pool_id"),
        Index("ix_session_allocations_target", "allocation_type", "department_id", "teacher_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_pool_id = Column(Integer, ForeignKey("session_pools.id"), nullable=False)
    institution_id = Column(String(64), ForeignKey("institutions.id"), nullable=False)
    name = Column(String(255), nullable=False)
    allocation_type = Column(
        Enum(*ALLOCATION_TYPES, name="allocation_type"),
        nullable=False,
    )
    department_id = Column(String(64))
    teacher_id = Column(String(64))
    # one allocation per student; approvals add to it
    student_id = Column(String(64), unique=True)
    group_id = Column(String(64))
    allocated_count = Column(Integer, nullable=False)
    used_count = Column(Integer, nullable=False, default=0)
    status = Column(
        Enum("active", "inactive", name="allocation_status"),
        nullable=False,
        default="active",
    )
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
    def remaining_count(self) -> int:
        return (self.allocated_count or 0) - (self.used_count or 0)


__all__ = ["ALLOCATION_TYPES", "SessionAllocation"]
