from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from session_engine.errors import NotFound, ValidationError
from session_engine.models import PricingOverride
from session_engine.services import price_resolver, pricing_store
from session_engine.services.price_resolver import resolve_effective_price
from session_engine.services.pricing_store import OverrideSnapshot, PricingSnapshot
from session_engine.services.transactions import run_in_transaction

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _effective(institution_id):
    return run_in_transaction(
        lambda db: price_resolver.get_effective_price(db, institution_id, NOW)
    )


def test_defaults_without_settings_row(institution):
    price = _effective(institution)
    assert price.vapi_cost == Decimal("0.11")
    assert price.markup_percentage == Decimal("36.36")
    assert price.license_cost == Decimal("19.96")
    assert price.session_minute_price == Decimal("0.15")
    assert price.source == "global"
    assert price.pricing_version == 0


def test_override_wins_then_reverts(institution):
    run_in_transaction(
        lambda db: pricing_store.set_override(
            db, institution, vapi_cost=0.13, markup_percentage=36.36, license_cost=25
        )
    )
    price = _effective(institution)
    assert price.session_minute_price == Decimal("0.18")
    assert price.source == "override"
    assert price.license_cost == Decimal("25")

    run_in_transaction(lambda db: pricing_store.set_override_enabled(db, institution, False))
    price = _effective(institution)
    assert price.session_minute_price == Decimal("0.15")
    assert price.source == "global"


def test_markup_override_prices_18_cents(institution):
    run_in_transaction(
        lambda db: pricing_store.set_override(
            db, institution, vapi_cost="0.11", markup_percentage="62.9", license_cost="19.96"
        )
    )
    price = _effective(institution)
    assert price.session_minute_price == Decimal("0.18")
    assert price.source == "override"
    assert _effective(None).session_minute_price == Decimal("0.15")

    run_in_transaction(lambda db: pricing_store.set_override_enabled(db, institution, False))
    price = _effective(institution)
    assert price.session_minute_price == Decimal("0.15")
    assert price.source == "global"


def test_update_pricing_bumps_version(institution):
    first = run_in_transaction(
        lambda db: pricing_store.update_pricing(
            db, vapi_cost="0.20", markup_percentage="50", license_cost="10"
        )
    )
    second = run_in_transaction(
        lambda db: pricing_store.update_pricing(
            db, vapi_cost="0.20", markup_percentage="40", license_cost="10"
        )
    )
    assert second.version == first.version + 1
    price = _effective(institution)
    assert price.session_minute_price == Decimal("0.28")
    assert price.pricing_version == second.version


@pytest.mark.parametrize(
    "vapi, markup, license_cost",
    [
        ("0.04", "36", "10"),
        ("0.26", "36", "10"),
        ("0.11", "9.99", "10"),
        ("0.11", "100.01", "10"),
        ("0.11", "36", "-1"),
        ("abc", "36", "10"),
        (None, "36", "10"),
    ],
)
def test_update_pricing_bounds(vapi, markup, license_cost):
    with pytest.raises(ValidationError):
        run_in_transaction(
            lambda db: pricing_store.update_pricing(
                db, vapi_cost=vapi, markup_percentage=markup, license_cost=license_cost
            )
        )


def test_bounds_are_inclusive():
    snapshot = run_in_transaction(
        lambda db: pricing_store.update_pricing(
            db, vapi_cost="0.25", markup_percentage="10", license_cost="0"
        )
    )
    assert snapshot.vapi_cost == Decimal("0.25")


def test_disabled_override_may_hold_out_of_range_values(institution):
    snapshot = run_in_transaction(
        lambda db: pricing_store.set_override(
            db, institution, vapi_cost=1, markup_percentage=500, license_cost=0, is_enabled=False
        )
    )
    assert snapshot.is_enabled is False
    with pytest.raises(ValidationError):
        run_in_transaction(lambda db: pricing_store.set_override_enabled(db, institution, True))


def test_cleanup_disables_invalid_overrides(make_institution, institution, db):
    other = make_institution("inst-2")
    run_in_transaction(
        lambda s: pricing_store.set_override(
            s, institution, vapi_cost=0.12, markup_percentage=30, license_cost=5
        )
    )
    # written behind the validator's back
    db.add(
        PricingOverride(
            institution_id=other,
            custom_vapi_cost=Decimal("0.90"),
            custom_markup_percentage=Decimal("30"),
            custom_license_cost=Decimal("5"),
            is_enabled=True,
        )
    )
    db.commit()

    assert run_in_transaction(pricing_store.cleanup_invalid_overrides) == 1
    assert _effective(other).source == "global"
    assert _effective(institution).source == "override"


def test_delete_override(institution):
    run_in_transaction(
        lambda db: pricing_store.set_override(
            db, institution, vapi_cost=0.12, markup_percentage=30, license_cost=5
        )
    )
    run_in_transaction(lambda db: pricing_store.delete_override(db, institution))
    assert run_in_transaction(lambda db: pricing_store.get_override(db, institution)) is None
    with pytest.raises(NotFound):
        run_in_transaction(lambda db: pricing_store.delete_override(db, institution))


def test_resolution_never_mixes_fields():
    settings = PricingSnapshot(Decimal("0.11"), Decimal("36.36"), Decimal("19.96"), version=3)
    override = OverrideSnapshot("i", Decimal("0.20"), Decimal("10"), Decimal("0"), True)

    price = resolve_effective_price(settings, override, NOW, "i")
    assert (price.vapi_cost, price.markup_percentage, price.license_cost) == (
        Decimal("0.20"),
        Decimal("10"),
        Decimal("0"),
    )
    assert price.session_minute_price == Decimal("0.22")
    assert price.pricing_version == 3


@pytest.mark.parametrize(
    "vapi, markup, expected",
    [
        ("0.11", "36.36", "0.15"),
        ("0.13", "36.36", "0.18"),
        ("0.05", "10", "0.06"),
        ("0.25", "100", "0.50"),
        ("0.125", "0", "0.13"),
    ],
)
def test_minute_price_rounds_half_up(vapi, markup, expected):
    assert price_resolver.session_minute_price(Decimal(vapi), Decimal(markup)) == Decimal(expected)


def test_price_per_session():
    settings = PricingSnapshot(Decimal("0.11"), Decimal("36.36"), Decimal("19.96"))
    price = resolve_effective_price(settings, None, NOW)
    assert price_resolver.price_per_session(price, 15) == Decimal("2.25")
