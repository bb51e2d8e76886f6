from __future__ import annotations

import asyncio
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from session_engine.dependencies import (
    PLATFORM_ADMIN,
    Actor,
    ensure_role,
    envelope,
    rate_limit,
    resolve_institution,
)
from session_engine.services import session_pool
from session_engine.services.transactions import run_in_transaction

router = APIRouter(prefix="/session-pool", tags=["session-pool"])


class SessionPoolRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    institution_id: str
    total_sessions: int
    used_sessions: int
    available_sessions: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PoolSummaryRecord(BaseModel):
    institution_id: str
    total_sessions: int
    used_sessions: int
    available_sessions: int
    allocated_sessions: int
    consumed_sessions: int
    allocation_count: int


class CapacityIncreaseRequest(BaseModel):
    institution_id: str
    session_count: int = Field(gt=0)


@router.get("")
async def get_session_pool(
    institution_id: str | None = None,
    actor: Actor = Depends(rate_limit),
):
    target = resolve_institution(actor, institution_id)

    def _read(db):
        summary = session_pool.pool_summary(db, target)
        return PoolSummaryRecord(**summary._asdict()).model_dump() if summary else None

    data = await asyncio.to_thread(run_in_transaction, _read)
    return envelope(data)


@router.post("/capacity")
async def increase_capacity(
    body: CapacityIncreaseRequest,
    actor: Actor = Depends(rate_limit),
):
    ensure_role(actor, PLATFORM_ADMIN)

    def _write(db):
        pool = session_pool.increase_purchased_capacity(db, body.institution_id, body.session_count)
        return SessionPoolRecord.model_validate(pool).model_dump(mode="json")

    data = await asyncio.to_thread(run_in_transaction, _write)
    return envelope(data, "Session pool capacity increased")
