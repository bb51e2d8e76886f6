from __future__ import annotations

import argparse
import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from session_engine.config import Settings
from session_engine.db import init_db
from session_engine.errors import LedgerError
from session_engine.logger import setup_logging
from session_engine.services import price_changes
from session_engine.services.clock import ensure_utc, utcnow
from session_engine.services.transactions import run_in_transaction

logger = logging.getLogger("session_engine.scripts.apply_price_changes")


def _parse_now(raw: str | None) -> datetime:
    if not raw:
        return utcnow()
    return ensure_utc(raw)


def apply_due_changes(now: datetime) -> tuple[list[int], list[int]]:
    """Apply due changes one transaction each; a failed change does not block the rest."""
    due = run_in_transaction(lambda db: price_changes.list_due(db, now))
    applied: list[int] = []
    failed: list[int] = []
    for change_id in due:
        try:
            run_in_transaction(lambda db: price_changes.apply_change(db, change_id, now=now))
        except (LedgerError, SQLAlchemyError):
            logger.exception("price change %s failed to apply", change_id, extra={"change_id": change_id})
            failed.append(change_id)
            continue
        applied.append(change_id)
    return applied, failed


def main() -> None:
    parser = argparse.ArgumentParser(description="Apply scheduled price changes that are due.")
    parser.add_argument("--now", default=None, help="ISO timestamp to treat as the current time")
    args = parser.parse_args()

    setup_logging()
    init_db(Settings())

    applied, failed = apply_due_changes(_parse_now(args.now))
    logger.info("applied %d scheduled price changes: %s", len(applied), applied)
    if failed:
        logger.warning("%d scheduled price changes failed: %s", len(failed), failed)


if __name__ == "__main__":
    main()
