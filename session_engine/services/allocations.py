"""Allocation ledger: slices of an institution pool granted to a target.

Every change in ``allocated_count`` is mirrored by a reserve/release on the
pool within the same session, so the pair commits or rolls back together.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, fields

from sqlalchemy.orm import Session

from session_engine.errors import InsufficientCapacity, NotFound, ValidationError
from session_engine.metrics import capacity_reject_total, sessions_consumed_total
from session_engine.models import ALLOCATION_TYPES, SessionAllocation
from session_engine.services import session_pool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationTarget:
    """Who an allocation is granted to.

    ``allocation_type`` selects which id is meaningful; ``department_id`` may
    accompany a student or teacher grant for reporting.
    """

    allocation_type: str
    department_id: str | None = None
    teacher_id: str | None = None
    student_id: str | None = None
    group_id: str | None = None

    @classmethod
    def department(cls, department_id: str, group_id: str | None = None) -> "AllocationTarget":
        return cls("department", department_id=department_id, group_id=group_id)

    @classmethod
    def teacher(cls, teacher_id: str, department_id: str | None = None) -> "AllocationTarget":
        return cls("teacher", department_id=department_id, teacher_id=teacher_id)

    @classmethod
    def student(cls, student_id: str, department_id: str | None = None) -> "AllocationTarget":
        return cls("student", department_id=department_id, student_id=student_id)

    @property
    def target_id(self) -> str | None:
        return {
            "department": self.department_id,
            "teacher": self.teacher_id,
            "student": self.student_id,
        }.get(self.allocation_type)

    def validate(self) -> None:
        if self.allocation_type not in ALLOCATION_TYPES:
            raise ValidationError(
                f"allocation_type must be one of {', '.join(ALLOCATION_TYPES)}"
            )
        if not self.target_id:
            raise ValidationError(f"{self.allocation_type}_id is required")

    def default_name(self) -> str:
        return f"{self.allocation_type.capitalize()}: {self.target_id}"


@dataclass(frozen=True)
class AllocationPatch:
    """Fields an admin may change on an allocation; ``None`` means untouched."""

    name: str | None = None
    department_id: str | None = None
    group_id: str | None = None
    allocated_count: int | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


def get_allocation(db: Session, allocation_id: int, *, for_update: bool = False) -> SessionAllocation:
    query = db.query(SessionAllocation).filter(SessionAllocation.id == allocation_id)
    if for_update:
        query = query.with_for_update()
    allocation = query.one_or_none()
    if allocation is None:
        raise NotFound(f"Session allocation {allocation_id} not found")
    return allocation


def list_allocations(db: Session, institution_id: str) -> list[SessionAllocation]:
    return (
        db.query(SessionAllocation)
        .filter(
            SessionAllocation.institution_id == institution_id,
            SessionAllocation.status == "active",
        )
        .order_by(SessionAllocation.name, SessionAllocation.id)
        .all()
    )


def find_allocation_for_target(
    db: Session, institution_id: str, target: AllocationTarget
) -> SessionAllocation | None:
    query = db.query(SessionAllocation).with_for_update()
    if target.allocation_type == "student":
        # student_id is globally unique, so no institution filter here
        return query.filter(SessionAllocation.student_id == target.student_id).one_or_none()
    query = query.filter(
        SessionAllocation.institution_id == institution_id,
        SessionAllocation.allocation_type == target.allocation_type,
        SessionAllocation.status == "active",
    )
    if target.allocation_type == "teacher":
        query = query.filter(SessionAllocation.teacher_id == target.teacher_id)
    else:
        query = query.filter(
            SessionAllocation.department_id == target.department_id,
            SessionAllocation.group_id.is_(None)
            if target.group_id is None
            else SessionAllocation.group_id == target.group_id,
        )
    return query.first()


def create_or_augment(
    db: Session,
    institution_id: str,
    target: AllocationTarget,
    count: int,
    *,
    name: str | None = None,
) -> SessionAllocation:
    """Reserve ``count`` sessions and grant them to ``target``.

    Adds to the target's existing allocation when there is one, otherwise
    creates it. Fails without side effects if the pool lacks headroom.
    """
    session_pool.require_positive_count(count)
    target.validate()
    existing = find_allocation_for_target(db, institution_id, target)
    if existing is not None and existing.institution_id != institution_id:
        raise ValidationError(
            f"Student {target.student_id} already holds an allocation in another institution"
        )

    pool = session_pool.reserve(db, institution_id, count)

    if existing is not None:
        existing.allocated_count += count
        existing.status = "active"
        if target.department_id and not existing.department_id:
            existing.department_id = target.department_id
        allocation = existing
        action = "augment"
    else:
        allocation = SessionAllocation(
            session_pool_id=pool.id,
            institution_id=institution_id,
            name=name or target.default_name(),
            allocation_type=target.allocation_type,
            department_id=target.department_id,
            teacher_id=target.teacher_id,
            student_id=target.student_id,
            group_id=target.group_id,
            allocated_count=count,
            used_count=0,
            status="active",
        )
        db.add(allocation)
        action = "create"
    db.flush()
    logger.info(
        "audit: allocation %s id=%s institution=%s type=%s target=%s count=%d allocated=%d",
        action,
        allocation.id,
        institution_id,
        target.allocation_type,
        target.target_id,
        count,
        allocation.allocated_count,
        extra={"institution_id": institution_id, "allocation_id": allocation.id, "count": count},
    )
    return allocation


def resize(db: Session, allocation_id: int, new_allocated_count: int) -> SessionAllocation:
    session_pool.require_positive_count(new_allocated_count, "allocated_count")
    allocation = get_allocation(db, allocation_id, for_update=True)
    if new_allocated_count < allocation.used_count:
        raise ValidationError(
            f"allocated_count cannot drop below the {allocation.used_count} sessions already used"
        )
    delta = new_allocated_count - allocation.allocated_count
    if delta > 0:
        session_pool.reserve(db, allocation.institution_id, delta)
    elif delta < 0:
        session_pool.release(db, allocation.institution_id, -delta)
    allocation.allocated_count = new_allocated_count
    db.flush()
    logger.info(
        "audit: allocation resize id=%s delta=%+d allocated=%d",
        allocation.id,
        delta,
        allocation.allocated_count,
        extra={"institution_id": allocation.institution_id, "allocation_id": allocation.id},
    )
    return allocation


def update_allocation(db: Session, allocation_id: int, patch: AllocationPatch) -> SessionAllocation:
    if patch.is_empty():
        raise ValidationError("No valid fields to update")
    if patch.name is not None and not patch.name.strip():
        raise ValidationError("name must not be empty")
    allocation = get_allocation(db, allocation_id, for_update=True)
    if patch.allocated_count is not None:
        resize(db, allocation_id, patch.allocated_count)
    if patch.name is not None:
        allocation.name = patch.name.strip()
    if patch.department_id is not None:
        allocation.department_id = patch.department_id
    if patch.group_id is not None:
        allocation.group_id = patch.group_id
    db.flush()
    return allocation


def delete_allocation(db: Session, allocation_id: int) -> None:
    """Release the allocation's reservation to the pool, then remove it."""
    allocation = get_allocation(db, allocation_id, for_update=True)
    session_pool.release(db, allocation.institution_id, allocation.allocated_count)
    institution_id = allocation.institution_id
    db.delete(allocation)
    db.flush()
    logger.info(
        "audit: allocation delete id=%s released=%d",
        allocation_id,
        allocation.allocated_count,
        extra={"institution_id": institution_id, "allocation_id": allocation_id},
    )


def consume(db: Session, allocation_id: int, count: int = 1) -> SessionAllocation:
    """Record completed interview sessions against an allocation.

    The pool is not touched: its ``used_sessions`` already covers the
    allocation's full reservation.
    """
    session_pool.require_positive_count(count)
    allocation = get_allocation(db, allocation_id, for_update=True)
    remaining = allocation.remaining_count
    if count > remaining:
        capacity_reject_total.labels(scope="allocation").inc()
        raise InsufficientCapacity(
            requested=count,
            available=remaining,
            message=f"Allocation {allocation_id} has only {remaining} sessions left",
        )
    allocation.used_count += count
    db.flush()
    sessions_consumed_total.inc(count)
    logger.info(
        "audit: consume allocation=%s count=%d used=%d/%d",
        allocation.id,
        count,
        allocation.used_count,
        allocation.allocated_count,
        extra={"institution_id": allocation.institution_id, "allocation_id": allocation.id, "count": count},
    )
    return allocation


__all__ = [
    "AllocationPatch",
    "AllocationTarget",
    "consume",
    "create_or_augment",
    "delete_allocation",
    "find_allocation_for_target",
    "get_allocation",
    "list_allocations",
    "resize",
    "update_allocation",
]
