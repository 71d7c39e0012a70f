"""Logging for the redirect service.

Text lines in dev, JSON lines with ``LOG_FORMAT=json``. Records emitted while a
request is in flight, including those from the detached analytics tasks it
spawned, carry that request's ID. Redirect and analytics code may also pass
``extra={"short_code": ..., "url_id": ..., "task": ...}``; those keys become
top-level JSON fields.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from config.settings import settings
from cylink.middleware.request_id import request_id_var

CONTEXT_FIELDS = ("request_id", "short_code", "url_id", "task")

_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")


class RequestIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        rid = request_id_var.get()
        if rid and not getattr(record, "request_id", None):
            record.request_id = rid
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """Install a single stdout handler on the root logger. Arguments override settings."""
    log_format = log_format or settings.LOG_FORMAT
    level_name = (log_level or settings.LOG_LEVEL).upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIDFilter())
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
