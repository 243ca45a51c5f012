"""ADFLOW — Structured JSON Logging.

Records carry the identifiers of the tenant, campaign and automation they
concern (passed via ``extra=``) so a single dispatch can be followed across
submit, acknowledgement, callback and reconciliation lines.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from adflow.config import settings

EXTRA_FIELDS = (
    "tenant_id",
    "campaign_id",
    "automation_id",
    "request_id",
    "status_code",
    "duration_ms",
)


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def get_logger(name: str) -> logging.Logger:
    """``adflow.<name>`` logger writing JSON to stdout."""
    logger = logging.getLogger(f"adflow.{name}")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
        # uvicorn configures the root logger; avoid printing every line twice
        logger.propagate = False
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger
