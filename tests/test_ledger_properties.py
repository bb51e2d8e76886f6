"""Property tests for the session ledger.

Each example runs against its own institution so examples never share
pool state; the autouse table cleanup only runs between test functions.
"""
from __future__ import annotations

import uuid

from hypothesis import HealthCheck, given, settings, strategies as st

from session_engine.errors import InsufficientCapacity, ValidationError
from session_engine.models import Institution, SessionAllocation
from session_engine.services import allocations, session_pool
from session_engine.services.allocations import AllocationTarget
from session_engine.services.transactions import run_in_transaction

LEDGER_SETTINGS = settings(
    max_examples=25,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)

operations = st.lists(
    st.one_of(
        st.tuples(st.just("allocate"), st.sampled_from(["a", "b", "c"]), st.integers(1, 40)),
        st.tuples(st.just("resize"), st.integers(0, 5), st.integers(1, 60)),
        st.tuples(st.just("consume"), st.integers(0, 5), st.integers(1, 10)),
        st.tuples(st.just("delete"), st.integers(0, 5), st.just(0)),
    ),
    max_size=15,
)


def _funded_institution(total: int) -> str:
    institution_id = f"prop-{uuid.uuid4().hex[:12]}"

    def _seed(db):
        db.add(Institution(id=institution_id, name="Property"))
        db.flush()
        session_pool.increase_purchased_capacity(db, institution_id, total)

    run_in_transaction(_seed)
    return institution_id


def _state(institution_id):
    def _read(db):
        pool = session_pool.require_pool(db, institution_id, for_update=False)
        rows = (
            db.query(SessionAllocation)
            .filter(SessionAllocation.institution_id == institution_id)
            .all()
        )
        return pool.total_sessions, pool.used_sessions, [
            (r.id, r.allocated_count, r.used_count) for r in rows
        ]

    return run_in_transaction(_read)


def _assert_conserved(institution_id):
    total, used, rows = _state(institution_id)
    assert 0 <= used <= total
    assert used == sum(allocated for _, allocated, _ in rows)
    for _, allocated, consumed in rows:
        assert 0 <= consumed <= allocated


def _pick(institution_id, index):
    _, _, rows = _state(institution_id)
    if not rows:
        return None
    return rows[index % len(rows)][0]


@LEDGER_SETTINGS
@given(total=st.integers(1, 120), ops=operations)
def test_reservations_always_match_allocations(total, ops):
    institution_id = _funded_institution(total)

    for op, key, amount in ops:
        try:
            if op == "allocate":
                run_in_transaction(
                    lambda db: allocations.create_or_augment(
                        db, institution_id, AllocationTarget.department(key), amount
                    )
                )
            else:
                allocation_id = _pick(institution_id, key)
                if allocation_id is None:
                    continue
                if op == "resize":
                    run_in_transaction(lambda db: allocations.resize(db, allocation_id, amount))
                elif op == "consume":
                    run_in_transaction(lambda db: allocations.consume(db, allocation_id, amount))
                else:
                    run_in_transaction(lambda db: allocations.delete_allocation(db, allocation_id))
        except (InsufficientCapacity, ValidationError):
            pass
        _assert_conserved(institution_id)


@LEDGER_SETTINGS
@given(start=st.integers(1, 50), target=st.integers(1, 50))
def test_resize_round_trip_restores_pool(start, target):
    institution_id = _funded_institution(100)
    alloc = run_in_transaction(
        lambda db: allocations.create_or_augment(
            db, institution_id, AllocationTarget.teacher("t-1"), start
        )
    )
    before = _state(institution_id)[1]

    run_in_transaction(lambda db: allocations.resize(db, alloc.id, target))
    assert _state(institution_id)[1] == before - start + target

    run_in_transaction(lambda db: allocations.resize(db, alloc.id, start))
    assert _state(institution_id)[1] == before


@LEDGER_SETTINGS
@given(allocated=st.integers(1, 20), requests=st.lists(st.integers(1, 8), max_size=10))
def test_consumption_never_exceeds_allocation(allocated, requests):
    institution_id = _funded_institution(allocated)
    alloc = run_in_transaction(
        lambda db: allocations.create_or_augment(
            db, institution_id, AllocationTarget.department("d"), allocated
        )
    )

    consumed = 0
    for count in requests:
        try:
            run_in_transaction(lambda db: allocations.consume(db, alloc.id, count))
            consumed += count
        except InsufficientCapacity as exc:
            assert exc.available == allocated - consumed
            assert count > allocated - consumed
    _, _, rows = _state(institution_id)
    assert rows == [(alloc.id, allocated, consumed)]
    assert consumed <= allocated
