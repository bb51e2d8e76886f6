from __future__ import annotations

from decimal import Decimal

import pytest

from session_engine.errors import InvalidTransition, NotFound, ValidationError
from session_engine.services import pricing_store, purchases, session_pool
from session_engine.services.transactions import run_in_transaction


def _buy(institution_id, count=10):
    return run_in_transaction(lambda db: purchases.create_purchase(db, institution_id, count))


def test_purchase_priced_from_effective_price(institution):
    purchase = _buy(institution, 10)
    assert purchase.status == "pending"
    assert purchase.price_per_session == Decimal("2.25")
    assert purchase.total_amount == Decimal("22.50")
    assert purchase.pricing_version == 0


def test_purchase_uses_override(institution):
    run_in_transaction(
        lambda db: pricing_store.set_override(
            db, institution, vapi_cost="0.13", markup_percentage="36.36", license_cost="0"
        )
    )
    purchase = _buy(institution, 4)
    assert purchase.price_per_session == Decimal("2.70")
    assert purchase.total_amount == Decimal("10.80")


def test_completion_grows_pool(institution):
    purchase = _buy(institution, 10)
    assert run_in_transaction(lambda db: session_pool.get_pool(db, institution)) is None

    done = run_in_transaction(lambda db: purchases.complete_purchase(db, purchase.id, "pay-1"))
    assert done.status == "completed"
    assert done.payment_id == "pay-1"
    pool = run_in_transaction(lambda db: session_pool.require_pool(db, institution))
    assert pool.total_sessions == 10

    with pytest.raises(InvalidTransition):
        run_in_transaction(lambda db: purchases.complete_purchase(db, purchase.id, "pay-2"))
    pool = run_in_transaction(lambda db: session_pool.require_pool(db, institution))
    assert pool.total_sessions == 10


def test_failed_purchase_is_terminal(institution):
    purchase = _buy(institution)
    failed = run_in_transaction(lambda db: purchases.fail_purchase(db, purchase.id))
    assert failed.status == "failed"
    with pytest.raises(InvalidTransition):
        run_in_transaction(lambda db: purchases.complete_purchase(db, purchase.id, "pay-1"))
    assert run_in_transaction(lambda db: session_pool.get_pool(db, institution)) is None


def test_purchase_validation(institution):
    with pytest.raises(ValidationError):
        _buy(institution, 0)
    with pytest.raises(NotFound):
        _buy("ghost", 1)
    purchase = _buy(institution)
    with pytest.raises(ValidationError):
        run_in_transaction(lambda db: purchases.complete_purchase(db, purchase.id, ""))


def test_list_purchases_newest_first(institution):
    first = _buy(institution, 1)
    second = _buy(institution, 2)
    rows = run_in_transaction(lambda db: purchases.list_purchases(db, institution))
    assert [p.id for p in rows] == [second.id, first.id]


def test_refund_keeps_pool_capacity(institution):
    purchase = _buy(institution, 6)
    with pytest.raises(InvalidTransition):
        run_in_transaction(lambda db: purchases.refund_purchase(db, purchase.id))

    run_in_transaction(lambda db: purchases.complete_purchase(db, purchase.id, "pay-9"))
    refunded = run_in_transaction(lambda db: purchases.refund_purchase(db, purchase.id))
    assert refunded.status == "refunded"
    pool = run_in_transaction(lambda db: session_pool.require_pool(db, institution))
    assert pool.total_sessions == 6
