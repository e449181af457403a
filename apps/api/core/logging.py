"""
Logging setup for the analytics API.

Production logs are one JSON object per line. Request and pipeline logs pass
their context (user, range, record version, error code) through `log_fields`,
and the formatter lifts it to top-level keys so log search can filter on it.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from core.config import settings

SERVICE_NAME = "coaching-analytics-api"

# Libraries that log every query or connection at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "urllib3", "redis")


def log_fields(**fields: Any) -> Dict[str, Dict[str, Any]]:
    """`extra=` payload for a structured log call. None values are left out."""
    return {"extra_fields": {k: v for k, v in fields.items() if v is not None}}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, stamped with the time the record was created."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "environment": settings.ENVIRONMENT,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = getattr(record, "extra_fields", None)
        if isinstance(extra, dict):
            # Context never overwrites the base keys
            for key, value in extra.items():
                log_data.setdefault(key, value)

        # UUIDs, dates and enums end up as their string form
        return json.dumps(log_data, default=str)


def setup_logging() -> logging.Logger:
    """
    Configure the root logger.

    JSON output whenever LOG_FORMAT is json or the service runs in
    production; plain text otherwise (local development).
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    if settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger
