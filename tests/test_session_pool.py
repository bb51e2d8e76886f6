from __future__ import annotations

import pytest

from session_engine.errors import InsufficientCapacity, NotFound, ValidationError
from session_engine.services import allocations, session_pool
from session_engine.services.allocations import AllocationTarget
from session_engine.services.transactions import run_in_transaction


def test_first_purchase_creates_pool(institution):
    pool = run_in_transaction(
        lambda db: session_pool.increase_purchased_capacity(db, institution, 100)
    )
    assert pool.total_sessions == 100
    assert pool.used_sessions == 0
    assert pool.available_sessions == 100

    pool = run_in_transaction(
        lambda db: session_pool.increase_purchased_capacity(db, institution, 20)
    )
    assert pool.total_sessions == 120


def test_capacity_for_unknown_institution():
    with pytest.raises(NotFound):
        run_in_transaction(lambda db: session_pool.increase_purchased_capacity(db, "nope", 5))


@pytest.mark.parametrize("count", [0, -3, True, 2.5, "4"])
def test_non_positive_counts_rejected(institution, count):
    with pytest.raises(ValidationError):
        run_in_transaction(
            lambda db: session_pool.increase_purchased_capacity(db, institution, count)
        )


def test_reserve_without_pool(institution):
    with pytest.raises(NotFound):
        run_in_transaction(lambda db: session_pool.reserve(db, institution, 1))


def test_reserve_reports_requested_and_available(institution):
    run_in_transaction(lambda db: session_pool.increase_purchased_capacity(db, institution, 10))
    run_in_transaction(lambda db: session_pool.reserve(db, institution, 7))

    with pytest.raises(InsufficientCapacity) as exc_info:
        run_in_transaction(lambda db: session_pool.reserve(db, institution, 4))
    assert exc_info.value.requested == 4
    assert exc_info.value.available == 3

    pool = run_in_transaction(lambda db: session_pool.require_pool(db, institution))
    assert pool.used_sessions == 7


def test_release_more_than_reserved(institution):
    run_in_transaction(lambda db: session_pool.increase_purchased_capacity(db, institution, 10))
    run_in_transaction(lambda db: session_pool.reserve(db, institution, 2))
    with pytest.raises(ValidationError):
        run_in_transaction(lambda db: session_pool.release(db, institution, 3))


def test_summary_counts_active_allocations(institution):
    assert run_in_transaction(lambda db: session_pool.pool_summary(db, institution)) is None

    run_in_transaction(lambda db: session_pool.increase_purchased_capacity(db, institution, 50))
    alloc = run_in_transaction(
        lambda db: allocations.create_or_augment(
            db, institution, AllocationTarget.department("cs"), 20
        )
    )
    run_in_transaction(
        lambda db: allocations.create_or_augment(
            db, institution, AllocationTarget.teacher("t-9"), 5
        )
    )
    run_in_transaction(lambda db: allocations.consume(db, alloc.id, 3))

    summary = run_in_transaction(lambda db: session_pool.pool_summary(db, institution))
    assert summary.total_sessions == 50
    assert summary.used_sessions == 25
    assert summary.available_sessions == 25
    assert summary.allocated_sessions == 25
    assert summary.consumed_sessions == 3
    assert summary.allocation_count == 2
