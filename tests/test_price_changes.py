from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from session_engine.errors import InvalidTransition, NotFound, ValidationError
from session_engine.services import price_changes, price_resolver, pricing_store
from session_engine.services.price_changes import PriceChangePatch
from session_engine.services.transactions import run_in_transaction

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _schedule(days=1, change_type="vapiCost", affected="all", current="0.11", new="0.14"):
    return run_in_transaction(
        lambda db: price_changes.schedule(
            db,
            change_date=NOW + timedelta(days=days),
            change_type=change_type,
            affected=affected,
            current_value=current,
            new_value=new,
            now=NOW,
        )
    )


def _effective(institution_id=None, as_of=None):
    return run_in_transaction(
        lambda db: price_resolver.get_effective_price(db, institution_id, as_of)
    )


def test_schedule_requires_future_date():
    with pytest.raises(ValidationError):
        _schedule(days=0)
    with pytest.raises(ValidationError):
        _schedule(days=-2)


def test_schedule_validates_type_target_and_value(institution):
    with pytest.raises(ValidationError):
        _schedule(change_type="discount")
    with pytest.raises(NotFound):
        _schedule(affected="no-such-inst")
    with pytest.raises(ValidationError):
        _schedule(new="0.30")
    with pytest.raises(ValidationError):
        _schedule(change_type="markupPercentage", new="5")


def test_scheduled_change_has_no_effect_until_applied():
    change = _schedule(days=1)
    assert change.status == "scheduled"
    # even resolving at a time after change_date
    assert _effective(as_of=NOW + timedelta(days=5)).vapi_cost == Decimal("0.11")

    applied = run_in_transaction(lambda db: price_changes.apply_change(db, change.id, NOW))
    assert applied.status == "applied"
    assert applied.applied_at is not None
    price = _effective()
    assert price.vapi_cost == Decimal("0.14")
    assert price.session_minute_price == Decimal("0.19")


def test_apply_is_one_shot():
    change = _schedule()
    run_in_transaction(lambda db: price_changes.apply_change(db, change.id))
    with pytest.raises(InvalidTransition):
        run_in_transaction(lambda db: price_changes.apply_change(db, change.id))
    with pytest.raises(InvalidTransition):
        run_in_transaction(lambda db: price_changes.cancel(db, change.id))


def test_cancelled_change_cannot_apply():
    change = _schedule()
    cancelled = run_in_transaction(lambda db: price_changes.cancel(db, change.id))
    assert cancelled.status == "cancelled"
    with pytest.raises(InvalidTransition):
        run_in_transaction(lambda db: price_changes.apply_change(db, change.id))


def test_apply_due_in_date_order():
    later = _schedule(days=3, new="0.20")
    sooner = _schedule(days=2, new="0.18")
    future = _schedule(days=10, new="0.24")

    applied = run_in_transaction(
        lambda db: price_changes.apply_due(db, NOW + timedelta(days=4))
    )
    assert applied == [sooner.id, later.id]
    assert _effective().vapi_cost == Decimal("0.20")

    upcoming = run_in_transaction(price_changes.list_upcoming)
    assert [c.id for c in upcoming] == [future.id]


def test_institution_change_seeds_override(institution):
    change = _schedule(change_type="markupPercentage", affected=institution, current="36.36", new="50")
    run_in_transaction(lambda db: price_changes.apply_change(db, change.id))

    override = run_in_transaction(lambda db: pricing_store.get_override(db, institution))
    assert override.is_enabled is True
    assert override.vapi_cost == Decimal("0.11")
    assert override.markup_percentage == Decimal("50")

    price = _effective(institution)
    assert price.source == "override"
    assert price.session_minute_price == Decimal("0.17")
    # global settings untouched
    assert _effective().markup_percentage == Decimal("36.36")


def test_update_change(institution):
    change = _schedule()
    updated = run_in_transaction(
        lambda db: price_changes.update_change(
            db, change.id, PriceChangePatch(new_value="0.16", affected=institution)
        )
    )
    assert updated.new_value == Decimal("0.16")
    assert updated.affected == institution

    with pytest.raises(ValidationError):
        run_in_transaction(
            lambda db: price_changes.update_change(db, change.id, PriceChangePatch(new_value=1))
        )
    with pytest.raises(ValidationError):
        # 0.16 is not a valid markup
        run_in_transaction(
            lambda db: price_changes.update_change(
                db, change.id, PriceChangePatch(change_type="markupPercentage")
            )
        )
    with pytest.raises(ValidationError):
        run_in_transaction(lambda db: price_changes.update_change(db, change.id, PriceChangePatch()))


def test_delete_change():
    change = _schedule()
    run_in_transaction(lambda db: price_changes.delete_change(db, change.id))
    with pytest.raises(NotFound):
        run_in_transaction(lambda db: price_changes.get_change(db, change.id))
    assert run_in_transaction(price_changes.list_changes) == []
