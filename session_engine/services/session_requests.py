"""Student session requests reviewed by department staff.

``pending`` is the only non-terminal status. Approval grants the sessions
through :func:`allocations.create_or_augment` in the same transaction as the
status change, so a request is never ``approved`` without its allocation and
approving twice cannot allocate twice.
"""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from session_engine.errors import InvalidTransition, NotFound, ValidationError
from session_engine.metrics import session_request_review_total
from session_engine.models import REQUEST_STATUSES, SessionRequest
from session_engine.services import allocations, session_pool
from session_engine.services.allocations import AllocationTarget
from session_engine.services.clock import utcnow

logger = logging.getLogger(__name__)

REVIEW_STATUSES = ("approved", "rejected")


def create_request(
    db: Session,
    *,
    student_id: str,
    institution_id: str,
    department_id: str,
    session_count: int,
    reason: str | None = None,
) -> SessionRequest:
    if not student_id or not institution_id or not department_id:
        raise ValidationError(
            "Student ID, Institution ID, Department ID, and valid session count are required"
        )
    session_pool.require_positive_count(session_count, "session_count")
    session_pool.require_institution(db, institution_id)
    request = SessionRequest(
        student_id=student_id,
        institution_id=institution_id,
        department_id=department_id,
        session_count=session_count,
        reason=reason or "",
        status="pending",
    )
    db.add(request)
    db.flush()
    logger.info(
        "audit: session request created id=%s student=%s count=%d",
        request.id,
        student_id,
        session_count,
        extra={"institution_id": institution_id, "request_id": request.id},
    )
    return request


def get_request(db: Session, request_id: int, *, for_update: bool = False) -> SessionRequest:
    query = db.query(SessionRequest).filter(SessionRequest.id == request_id)
    if for_update:
        query = query.with_for_update()
    request = query.one_or_none()
    if request is None:
        raise NotFound(f"Session request {request_id} not found")
    return request


def _require_pending(request: SessionRequest, target: str) -> None:
    if request.status != "pending":
        logger.warning(
            "session request %s already %s", request.id, request.status,
            extra={"request_id": request.id},
        )
        raise InvalidTransition(request.status, target)


def approve(db: Session, request_id: int, reviewed_by: str) -> SessionRequest:
    if not reviewed_by:
        raise ValidationError("Reviewed by user ID is required")
    request = get_request(db, request_id, for_update=True)
    _require_pending(request, "approved")

    # raises before the status flips when the pool cannot cover the request
    allocation = allocations.create_or_augment(
        db,
        request.institution_id,
        AllocationTarget.student(request.student_id, department_id=request.department_id),
        request.session_count,
        name=f"Student: {request.student_id}",
    )
    request.status = "approved"
    request.reviewed_by = reviewed_by
    request.reviewed_at = utcnow()
    request.allocation_id = allocation.id
    db.flush()
    session_request_review_total.labels(status="approved").inc()
    logger.info(
        "audit: session request approved id=%s by=%s allocation=%s",
        request.id,
        reviewed_by,
        allocation.id,
        extra={"request_id": request.id, "allocation_id": allocation.id},
    )
    return request


def reject(db: Session, request_id: int, reviewed_by: str) -> SessionRequest:
    if not reviewed_by:
        raise ValidationError("Reviewed by user ID is required")
    request = get_request(db, request_id, for_update=True)
    _require_pending(request, "rejected")
    request.status = "rejected"
    request.reviewed_by = reviewed_by
    request.reviewed_at = utcnow()
    db.flush()
    session_request_review_total.labels(status="rejected").inc()
    logger.info(
        "audit: session request rejected id=%s by=%s", request.id, reviewed_by,
        extra={"request_id": request.id},
    )
    return request


def review(db: Session, request_id: int, status: str, reviewed_by: str) -> SessionRequest:
    if status not in REVIEW_STATUSES:
        raise ValidationError("Valid status (approved/rejected) is required")
    if status == "approved":
        return approve(db, request_id, reviewed_by)
    return reject(db, request_id, reviewed_by)


def list_department_requests(
    db: Session, department_id: str, status: str | None = None
) -> list[SessionRequest]:
    if status is not None and status not in REQUEST_STATUSES:
        raise ValidationError(f"Unknown status {status!r}")
    query = db.query(SessionRequest).filter(SessionRequest.department_id == department_id)
    if status:
        query = query.filter(SessionRequest.status == status)
    return query.order_by(SessionRequest.created_at.desc(), SessionRequest.id.desc()).all()


def list_student_requests(db: Session, student_id: str) -> list[SessionRequest]:
    return (
        db.query(SessionRequest)
        .filter(SessionRequest.student_id == student_id)
        .order_by(SessionRequest.created_at.desc(), SessionRequest.id.desc())
        .all()
    )


__all__ = [
    "REVIEW_STATUSES",
    "approve",
    "create_request",
    "get_request",
    "list_department_requests",
    "list_student_requests",
    "reject",
    "review",
]
