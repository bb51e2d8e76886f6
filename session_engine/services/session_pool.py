"""Per-institution session pool ledger.

``used_sessions`` counts sessions reserved by allocations, not sessions
consumed by interviews: an allocation reserves its full size up front, and
``available = total - used`` is the headroom for new allocations.
"""
from __future__ import annotations

import logging
from typing import NamedTuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from session_engine.errors import InsufficientCapacity, NotFound, ValidationError
from session_engine.metrics import (
    capacity_reject_total,
    pool_purchased_sessions_total,
    pool_released_sessions_total,
    pool_reserved_sessions_total,
)
from session_engine.models import Institution, SessionAllocation, SessionPool

logger = logging.getLogger(__name__)


class PoolSummary(NamedTuple):
    """Read view of a pool for dashboards."""
    institution_id: str
    total_sessions: int
    used_sessions: int
    available_sessions: int
    allocated_sessions: int
    consumed_sessions: int
    allocation_count: int


def require_positive_count(value, field: str = "count") -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value


def require_institution(db: Session, institution_id: str) -> Institution:
    if not institution_id:
        raise ValidationError("institution_id is required")
    institution = db.get(Institution, institution_id)
    if institution is None:
        raise NotFound(f"Institution {institution_id} not found")
    return institution


def get_pool(db: Session, institution_id: str, *, for_update: bool = False) -> SessionPool | None:
    query = db.query(SessionPool).filter(SessionPool.institution_id == institution_id)
    if for_update:
        query = query.with_for_update()
    return query.one_or_none()


def require_pool(db: Session, institution_id: str, *, for_update: bool = True) -> SessionPool:
    pool = get_pool(db, institution_id, for_update=for_update)
    if pool is None:
        raise NotFound(f"Session pool not found for institution {institution_id}")
    return pool


def increase_purchased_capacity(db: Session, institution_id: str, count: int) -> SessionPool:
    """Add purchased sessions, creating the pool on the first purchase."""
    require_positive_count(count)
    require_institution(db, institution_id)
    pool = get_pool(db, institution_id, for_update=True)
    if pool is None:
        pool = SessionPool(institution_id=institution_id, total_sessions=0, used_sessions=0)
        db.add(pool)
    pool.total_sessions = (pool.total_sessions or 0) + count
    db.flush()
    pool_purchased_sessions_total.inc(count)
    logger.info(
        "audit: pool capacity +%d institution=%s total=%d",
        count,
        institution_id,
        pool.total_sessions,
        extra={"institution_id": institution_id, "count": count},
    )
    return pool


def reserve(db: Session, institution_id: str, count: int) -> SessionPool:
    require_positive_count(count)
    pool = require_pool(db, institution_id)
    available = pool.available_sessions
    if available < count:
        capacity_reject_total.labels(scope="pool").inc()
        logger.warning(
            "reserve rejected institution=%s requested=%d available=%d",
            institution_id,
            count,
            available,
            extra={"institution_id": institution_id, "count": count},
        )
        raise InsufficientCapacity(requested=count, available=available)
    pool.used_sessions += count
    db.flush()
    pool_reserved_sessions_total.inc(count)
    logger.info(
        "audit: reserve institution=%s count=%d used=%d/%d",
        institution_id,
        count,
        pool.used_sessions,
        pool.total_sessions,
        extra={"institution_id": institution_id, "count": count},
    )
    return pool


def release(db: Session, institution_id: str, count: int) -> SessionPool:
    require_positive_count(count)
    pool = require_pool(db, institution_id)
    if pool.used_sessions < count:
        raise ValidationError(
            f"Cannot release {count} sessions; only {pool.used_sessions} reserved"
        )
    pool.used_sessions -= count
    db.flush()
    pool_released_sessions_total.inc(count)
    logger.info(
        "audit: release institution=%s count=%d used=%d/%d",
        institution_id,
        count,
        pool.used_sessions,
        pool.total_sessions,
        extra={"institution_id": institution_id, "count": count},
    )
    return pool


def pool_summary(db: Session, institution_id: str) -> PoolSummary | None:
    pool = get_pool(db, institution_id)
    if pool is None:
        return None
    allocated, consumed, allocation_count = (
        db.query(
            func.coalesce(func.sum(SessionAllocation.allocated_count), 0),
            func.coalesce(func.sum(SessionAllocation.used_count), 0),
            func.count(SessionAllocation.id),
        )
        .filter(
            SessionAllocation.session_pool_id == pool.id,
            SessionAllocation.status == "active",
        )
        .one()
    )
    return PoolSummary(
        institution_id=institution_id,
        total_sessions=pool.total_sessions,
        used_sessions=pool.used_sessions,
        available_sessions=pool.available_sessions,
        allocated_sessions=int(allocated),
        consumed_sessions=int(consumed),
        allocation_count=int(allocation_count),
    )


__all__ = [
    "PoolSummary",
    "get_pool",
    "increase_purchased_capacity",
    "pool_summary",
    "release",
    "require_institution",
    "require_pool",
    "require_positive_count",
    "reserve",
]
