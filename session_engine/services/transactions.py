from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from session_engine import db as db_module
from session_engine.config import Settings
from session_engine.errors import Contention, LedgerError
from session_engine.metrics import ledger_conflict_total

settings = Settings()
logger = logging.getLogger(__name__)

T = TypeVar("T")

UNIQUE_VIOLATION = "23505"


def _is_unique_violation(exc: IntegrityError) -> bool:
    code = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
    if code:
        return code == UNIQUE_VIOLATION
    return "UNIQUE constraint failed" in str(exc.orig)


def run_in_transaction(fn: Callable[[Session], T], *, attempts: int | None = None) -> T:
    """Run ``fn`` in a fresh session and commit, retrying on write conflicts.

    A conflict is a stale versioned row (another writer committed first) or a
    unique-key race on insert. Ledger errors and other integrity
    failures (CHECK, NOT NULL, foreign keys) are raised without a retry.
    """
    max_attempts = attempts or settings.ledger_max_retries
    last_exc: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        with db_module.SessionLocal() as db:
            try:
                result = fn(db)
                db.commit()
                return result
            except LedgerError:
                db.rollback()
                raise
            except IntegrityError as exc:
                db.rollback()
                if not _is_unique_violation(exc):
                    raise
                last_exc = exc
                ledger_conflict_total.inc()
                logger.warning(
                    "ledger insert race, attempt %d/%d: %s", attempt, max_attempts, exc
                )
            except StaleDataError as exc:
                db.rollback()
                last_exc = exc
                ledger_conflict_total.inc()
                logger.warning(
                    "ledger conflict, attempt %d/%d: %s", attempt, max_attempts, exc
                )
    raise Contention(
        f"Concurrent update detected; gave up after {max_attempts} attempts"
    ) from last_exc


__all__ = ["run_in_transaction"]
