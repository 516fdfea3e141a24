"""
Logging setup for the moderation lab.

The API lifespan calls ``configure_logging`` once with ``LOG_LEVEL`` and
``LOG_FORMAT`` from ``moderation_lab.config``.  In ``json`` mode each record
becomes one JSON line; queue code attaches ``job_id``/``provider`` through
``extra=`` so a single run can be followed across workers.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# Record attributes copied into JSON output when present.
CONTEXT_FIELDS = ("job_id", "provider", "email")

PLAIN_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def _level(name: str) -> int:
    return getattr(logging, str(name).upper(), logging.INFO)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message,
    any ``CONTEXT_FIELDS`` set on the record, and the formatted traceback."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def configure_logging(level: str = "INFO", fmt: str = "structured") -> None:
    """Configure the root logger: ``json`` lines or the pipe-separated text format."""
    if fmt == "json":
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(StructuredFormatter())
        logging.basicConfig(level=_level(level), handlers=[handler], force=True)
    else:
        logging.basicConfig(
            level=_level(level),
            format=PLAIN_FORMAT,
            datefmt="%Y-%m-%d %H:%M:%S",
            force=True,
        )
