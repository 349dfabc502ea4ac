"""Logging for the sync core.

Text lines by default. With LOG_FORMAT=json, one JSON object per record so
device logs can be shipped and filtered by entity family or error kind.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import TextIO

from config.settings import settings

# Passed via ``extra=`` by repositories, reactions and the reconciler
SYNC_FIELDS = ("family", "entity_id", "error_kind")

# Per-request / per-statement / per-job chatter
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite", "apscheduler")

TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, sync context fields included when set."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update({
            name: getattr(record, name) for name in SYNC_FIELDS if hasattr(record, name)
        })
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return JSONFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt="%H:%M:%S")


def setup_logging(
    log_format: str | None = None,
    log_level: str | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Install a single root handler; arguments override settings."""
    level_name = (log_level or settings.LOG_LEVEL).upper()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(_formatter(log_format or settings.LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    root.handlers[:] = [handler]

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return root
