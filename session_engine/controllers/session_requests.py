from __future__ import annotations

import asyncio
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from session_engine.dependencies import (
    DEPARTMENT_ADMIN,
    INSTITUTION_ADMIN,
    STUDENT,
    Actor,
    ensure_institution_access,
    ensure_role,
    envelope,
    rate_limit,
    resolve_institution,
)
from session_engine.errors import PermissionDenied
from session_engine.services import session_requests
from session_engine.services.transactions import run_in_transaction

router = APIRouter(prefix="/session-requests", tags=["session-requests"])


class SessionRequestRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: str
    institution_id: str
    department_id: str
    session_count: int
    reason: str
    status: str
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    allocation_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SessionRequestCreate(BaseModel):
    student_id: str | None = None
    institution_id: str | None = None
    department_id: str
    session_count: int
    reason: str | None = None


class SessionRequestReview(BaseModel):
    status: str
    reviewed_by: str | None = None


def _dump(request) -> dict:
    return SessionRequestRecord.model_validate(request).model_dump(mode="json")


@router.post("", status_code=201)
async def create_session_request(
    body: SessionRequestCreate,
    actor: Actor = Depends(rate_limit),
):
    ensure_role(actor, STUDENT, INSTITUTION_ADMIN, DEPARTMENT_ADMIN)
    institution_id = resolve_institution(actor, body.institution_id)
    student_id = body.student_id or actor.user_id
    if actor.role == STUDENT and student_id != actor.user_id:
        raise PermissionDenied("Students may only request sessions for themselves")

    def _write(db):
        request = session_requests.create_request(
            db,
            student_id=student_id,
            institution_id=institution_id,
            department_id=body.department_id,
            session_count=body.session_count,
            reason=body.reason,
        )
        return _dump(request)

    data = await asyncio.to_thread(run_in_transaction, _write)
    return envelope(data, "Session request created successfully")


@router.get("")
async def list_session_requests(
    department_id: str | None = None,
    status: str | None = None,
    actor: Actor = Depends(rate_limit),
):
    def _read(db):
        if department_id:
            ensure_role(actor, DEPARTMENT_ADMIN, INSTITUTION_ADMIN)
            rows = session_requests.list_department_requests(db, department_id, status)
            if not actor.is_platform_admin:
                rows = [r for r in rows if r.institution_id == actor.institution_id]
        else:
            rows = session_requests.list_student_requests(db, actor.user_id)
        return [_dump(r) for r in rows]

    data = await asyncio.to_thread(run_in_transaction, _read)
    return envelope(data)


@router.patch("/{request_id}/status")
async def review_session_request(
    request_id: int,
    body: SessionRequestReview,
    actor: Actor = Depends(rate_limit),
):
    ensure_role(actor, DEPARTMENT_ADMIN, INSTITUTION_ADMIN)
    reviewer = body.reviewed_by or actor.user_id

    def _write(db):
        ensure_institution_access(actor, session_requests.get_request(db, request_id).institution_id)
        return _dump(session_requests.review(db, request_id, body.status, reviewer))

    data = await asyncio.to_thread(run_in_transaction, _write)
    return envelope(data, f"Session request {body.status} successfully")
