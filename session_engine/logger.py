import json  # JSON serialization
import logging
from datetime import datetime, timezone

# ``extra=`` keys copied into the JSON payload when present on a record
LEDGER_FIELDS = (
    "institution_id",
    "allocation_id",
    "request_id",
    "purchase_id",
    "change_id",
    "count",
)


class JsonFormatter(logging.Formatter):
    """Format log records as JSON, including ledger context fields."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        data = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in LEDGER_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                data[key] = value
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def setup_logging(level: int = logging.INFO) -> None:
    """Configure root logger with JSON formatter."""
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=level, handlers=[handler])
