from __future__ import annotations

import logging
from typing import Any

import redis.asyncio as redis
from fastapi import Depends, Header, HTTPException
from pydantic import BaseModel
from redis.exceptions import RedisError

from session_engine.config import Settings
from session_engine.errors import PermissionDenied
from session_engine.models import ErrorCode

settings = Settings()
redis_client = redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)

logger = logging.getLogger(__name__)

PLATFORM_ADMIN = "platform_admin"
INSTITUTION_ADMIN = "institution_admin"
DEPARTMENT_ADMIN = "department_admin"
TEACHER = "teacher"
STUDENT = "student"
ROLES = {PLATFORM_ADMIN, INSTITUTION_ADMIN, DEPARTMENT_ADMIN, TEACHER, STUDENT}


class ErrorResponse(BaseModel):
    success: bool = False
    code: str
    message: str


class Actor(BaseModel):
    """Caller identity asserted by the upstream auth gateway."""

    user_id: str
    role: str
    institution_id: str | None = None

    @property
    def is_platform_admin(self) -> bool:
        return self.role == PLATFORM_ADMIN


def envelope(data: Any = None, message: str = "OK") -> dict[str, Any]:
    return {"success": True, "message": message, "data": data}


async def require_actor(
    x_api_key: str = Header(..., alias="X-API-Key"),
    x_api_ver: str | None = Header(None, alias="X-API-Ver"),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
    x_role: str | None = Header(None, alias="X-Role"),
    x_institution_id: str | None = Header(None, alias="X-Institution-ID"),
) -> Actor:
    if x_api_ver is None:
        err = ErrorResponse(code=ErrorCode.UPGRADE_REQUIRED, message="Missing API version")
        raise HTTPException(status_code=426, detail=err.model_dump())

    if x_api_ver != "v1":
        err = ErrorResponse(code=ErrorCode.UPGRADE_REQUIRED, message="Invalid API version")
        raise HTTPException(status_code=426, detail=err.model_dump())

    if x_api_key != settings.api_key:
        err = ErrorResponse(code=ErrorCode.UNAUTHORIZED, message="Invalid API key")
        raise HTTPException(status_code=401, detail=err.model_dump())

    if not x_user_id:
        err = ErrorResponse(code=ErrorCode.UNAUTHORIZED, message="Missing user ID")
        raise HTTPException(status_code=401, detail=err.model_dump())

    if x_role not in ROLES:
        err = ErrorResponse(code=ErrorCode.UNAUTHORIZED, message="Missing or unknown role")
        raise HTTPException(status_code=401, detail=err.model_dump())

    if x_role != PLATFORM_ADMIN and not x_institution_id:
        err = ErrorResponse(code=ErrorCode.UNAUTHORIZED, message="Missing institution ID")
        raise HTTPException(status_code=401, detail=err.model_dump())

    return Actor(user_id=x_user_id, role=x_role, institution_id=x_institution_id)


async def rate_limit(actor: Actor = Depends(require_actor)) -> Actor:
    """Throttle requests per user via Redis."""
    user_key = f"rate:user:{actor.user_id}"
    try:
        pipe = redis_client.pipeline()
        pipe.incr(user_key)
        pipe.expire(user_key, 60)
        user_count, _ = await pipe.execute()
    except RedisError as exc:
        logger.exception("Redis unavailable for rate limiting: %s", exc)
        err = ErrorResponse(
            code=ErrorCode.SERVICE_UNAVAILABLE, message="Rate limiter unavailable"
        )
        raise HTTPException(status_code=503, detail=err.model_dump()) from exc
    if user_count > settings.rate_limit_per_minute:
        err = ErrorResponse(code=ErrorCode.TOO_MANY_REQUESTS, message="Rate limit exceeded")
        raise HTTPException(status_code=429, detail=err.model_dump())

    return actor


def ensure_role(actor: Actor, *roles: str) -> None:
    if actor.is_platform_admin or actor.role in roles:
        return
    logger.warning("audit: role %s denied for user %s", actor.role, actor.user_id)
    raise PermissionDenied(f"Role {actor.role} may not perform this action")


def ensure_institution_access(actor: Actor, institution_id: str | None) -> None:
    if actor.is_platform_admin:
        return
    if not institution_id or actor.institution_id != institution_id:
        logger.warning(
            "audit: user %s denied access to institution %s",
            actor.user_id,
            institution_id,
            extra={"institution_id": institution_id},
        )
        raise PermissionDenied("Not authorized for this institution")


def resolve_institution(actor: Actor, institution_id: str | None) -> str:
    """Pick the target institution: explicit for platform admins, own otherwise."""
    target = institution_id or actor.institution_id
    if not target:
        err = ErrorResponse(code=ErrorCode.BAD_REQUEST, message="institution_id is required")
        raise HTTPException(status_code=400, detail=err.model_dump())
    ensure_institution_access(actor, target)
    return target
