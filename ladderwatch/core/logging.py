"""Ladderwatch — Structured JSON Logging.

One stdout handler on the `ladderwatch` logger; every module logger is a
child of it. Job code passes correlation fields through `extra=`.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from ladderwatch.config import settings

ROOT_LOGGER = "ladderwatch"

# Extra attributes copied onto the JSON line when a caller passes them via `extra=`
EXTRA_FIELDS = (
    "job_type",
    "job_run_id",
    "snapshot_date",
    "character",
    "endpoint",
    "duration_ms",
    "status_code",
)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, timestamped from the record itself."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_entry.update(
            {key: getattr(record, key) for key in EXTRA_FIELDS if hasattr(record, key)}
        )
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def _root_logger() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        root.addHandler(handler)
        root.propagate = False
        root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return root


def get_logger(name: str) -> logging.Logger:
    """Return `ladderwatch.<name>`; records flow up to the shared JSON handler."""
    _root_logger()
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
