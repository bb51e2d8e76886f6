"""Session purchases priced from the effective institution price.

Payment itself happens elsewhere; completing a purchase is the confirmation
event that grows the institution's pool.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from session_engine.config import Settings
from session_engine.errors import InvalidTransition, NotFound, ValidationError
from session_engine.models import SessionPurchase
from session_engine.services import price_resolver, session_pool

settings = Settings()
logger = logging.getLogger(__name__)


def create_purchase(
    db: Session,
    institution_id: str,
    session_count: int,
    now: datetime | None = None,
) -> SessionPurchase:
    session_pool.require_positive_count(session_count, "session_count")
    session_pool.require_institution(db, institution_id)
    price = price_resolver.get_effective_price(db, institution_id, now)
    unit = price_resolver.price_per_session(price, settings.session_length_minutes)
    purchase = SessionPurchase(
        institution_id=institution_id,
        session_count=session_count,
        price_per_session=unit,
        total_amount=unit * session_count,
        pricing_version=price.pricing_version,
        status="pending",
    )
    db.add(purchase)
    db.flush()
    logger.info(
        "audit: purchase created id=%s institution=%s sessions=%d unit=%s (%s pricing)",
        purchase.id,
        institution_id,
        session_count,
        unit,
        price.source,
        extra={"institution_id": institution_id, "purchase_id": purchase.id},
    )
    return purchase


def get_purchase(db: Session, purchase_id: int, *, for_update: bool = False) -> SessionPurchase:
    query = db.query(SessionPurchase).filter(SessionPurchase.id == purchase_id)
    if for_update:
        query = query.with_for_update()
    purchase = query.one_or_none()
    if purchase is None:
        raise NotFound(f"Session purchase {purchase_id} not found")
    return purchase


def complete_purchase(db: Session, purchase_id: int, payment_id: str) -> SessionPurchase:
    if not payment_id:
        raise ValidationError("payment_id is required")
    purchase = get_purchase(db, purchase_id, for_update=True)
    if purchase.status != "pending":
        raise InvalidTransition(purchase.status, "completed")
    purchase.status = "completed"
    purchase.payment_id = payment_id
    session_pool.increase_purchased_capacity(db, purchase.institution_id, purchase.session_count)
    db.flush()
    logger.info(
        "audit: purchase completed id=%s payment=%s",
        purchase.id,
        payment_id,
        extra={"institution_id": purchase.institution_id, "purchase_id": purchase.id},
    )
    return purchase


def fail_purchase(db: Session, purchase_id: int) -> SessionPurchase:
    purchase = get_purchase(db, purchase_id, for_update=True)
    if purchase.status != "pending":
        raise InvalidTransition(purchase.status, "failed")
    purchase.status = "failed"
    db.flush()
    logger.warning(
        "purchase failed id=%s", purchase.id,
        extra={"institution_id": purchase.institution_id, "purchase_id": purchase.id},
    )
    return purchase


def refund_purchase(db: Session, purchase_id: int) -> SessionPurchase:
    """Mark a completed purchase refunded; pool capacity stays as it is."""
    purchase = get_purchase(db, purchase_id, for_update=True)
    if purchase.status != "completed":
        raise InvalidTransition(purchase.status, "refunded")
    purchase.status = "refunded"
    db.flush()
    logger.warning(
        "audit: purchase refunded id=%s sessions=%d kept in pool",
        purchase.id,
        purchase.session_count,
        extra={"institution_id": purchase.institution_id, "purchase_id": purchase.id},
    )
    return purchase


def list_purchases(db: Session, institution_id: str) -> list[SessionPurchase]:
    return (
        db.query(SessionPurchase)
        .filter(SessionPurchase.institution_id == institution_id)
        .order_by(SessionPurchase.created_at.desc(), SessionPurchase.id.desc())
        .all()
    )


__all__ = [
    "complete_purchase",
    "create_purchase",
    "fail_purchase",
    "get_purchase",
    "list_purchases",
    "refund_purchase",
]
