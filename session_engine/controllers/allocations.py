from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from session_engine.dependencies import (
    DEPARTMENT_ADMIN,
    INSTITUTION_ADMIN,
    STUDENT,
    TEACHER,
    Actor,
    ensure_institution_access,
    ensure_role,
    envelope,
    rate_limit,
    resolve_institution,
)
from session_engine.services import allocations
from session_engine.services.allocations import AllocationPatch, AllocationTarget
from session_engine.services.transactions import run_in_transaction

router = APIRouter(prefix="/session-allocations", tags=["session-allocations"])


class AllocationRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    session_pool_id: int
    institution_id: str
    name: str
    allocation_type: str
    department_id: str | None = None
    teacher_id: str | None = None
    student_id: str | None = None
    group_id: str | None = None
    allocated_count: int
    used_count: int
    remaining_count: int
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AllocationCreateRequest(BaseModel):
    institution_id: str | None = None
    allocation_type: Literal["department", "teacher", "student"]
    department_id: str | None = None
    teacher_id: str | None = None
    student_id: str | None = None
    group_id: str | None = None
    allocated_sessions: int
    name: str | None = None


class AllocationPatchRequest(BaseModel):
    name: str | None = None
    department_id: str | None = None
    group_id: str | None = None
    allocated_sessions: int | None = None


class ConsumeRequest(BaseModel):
    count: int = Field(1, description="Sessions used by the completed interview")


def _dump(allocation) -> dict:
    return AllocationRecord.model_validate(allocation).model_dump(mode="json")


def _ensure_can_consume(actor: Actor, allocation) -> None:
    """Admins consume any allocation; teachers and students only their own."""
    if allocation.allocation_type == "student" and allocation.student_id == actor.user_id:
        ensure_role(actor, INSTITUTION_ADMIN, DEPARTMENT_ADMIN, STUDENT)
    elif allocation.allocation_type == "teacher" and allocation.teacher_id == actor.user_id:
        ensure_role(actor, INSTITUTION_ADMIN, DEPARTMENT_ADMIN, TEACHER)
    else:
        ensure_role(actor, INSTITUTION_ADMIN, DEPARTMENT_ADMIN)


@router.get("")
async def list_allocations(
    institution_id: str | None = None,
    actor: Actor = Depends(rate_limit),
):
    target = resolve_institution(actor, institution_id)

    def _read(db):
        return [_dump(a) for a in allocations.list_allocations(db, target)]

    data = await asyncio.to_thread(run_in_transaction, _read)
    return envelope(data)


@router.post("", status_code=201)
async def create_allocation(
    body: AllocationCreateRequest,
    actor: Actor = Depends(rate_limit),
):
    ensure_role(actor, INSTITUTION_ADMIN)
    institution_id = resolve_institution(actor, body.institution_id)
    target = AllocationTarget(
        allocation_type=body.allocation_type,
        department_id=body.department_id,
        teacher_id=body.teacher_id,
        student_id=body.student_id,
        group_id=body.group_id,
    )

    def _write(db):
        allocation = allocations.create_or_augment(
            db, institution_id, target, body.allocated_sessions, name=body.name
        )
        return _dump(allocation)

    data = await asyncio.to_thread(run_in_transaction, _write)
    return envelope(data, "Session allocation created successfully")


@router.patch("/{allocation_id}")
async def update_allocation(
    allocation_id: int,
    body: AllocationPatchRequest,
    actor: Actor = Depends(rate_limit),
):
    ensure_role(actor, INSTITUTION_ADMIN)
    patch = AllocationPatch(
        name=body.name,
        department_id=body.department_id,
        group_id=body.group_id,
        allocated_count=body.allocated_sessions,
    )

    def _write(db):
        ensure_institution_access(actor, allocations.get_allocation(db, allocation_id).institution_id)
        return _dump(allocations.update_allocation(db, allocation_id, patch))

    data = await asyncio.to_thread(run_in_transaction, _write)
    return envelope(data, "Session allocation updated successfully")


@router.delete("/{allocation_id}")
async def delete_allocation(
    allocation_id: int,
    actor: Actor = Depends(rate_limit),
):
    ensure_role(actor, INSTITUTION_ADMIN)

    def _write(db):
        ensure_institution_access(actor, allocations.get_allocation(db, allocation_id).institution_id)
        allocations.delete_allocation(db, allocation_id)

    await asyncio.to_thread(run_in_transaction, _write)
    return envelope(None, "Session allocation deleted successfully")


@router.post("/{allocation_id}/consume")
async def consume_sessions(
    allocation_id: int,
    body: ConsumeRequest,
    actor: Actor = Depends(rate_limit),
):
    def _write(db):
        allocation = allocations.get_allocation(db, allocation_id)
        ensure_institution_access(actor, allocation.institution_id)
        _ensure_can_consume(actor, allocation)
        return _dump(allocations.consume(db, allocation_id, body.count))

    data = await asyncio.to_thread(run_in_transaction, _write)
    return envelope(data, "Sessions consumed")
