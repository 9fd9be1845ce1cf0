"""JSON log output and trace helpers for the engine."""

from __future__ import annotations

import logging
import os
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, TextIO

import orjson

_TRACE_KEY = "trace_id"

# attributes every LogRecord carries; anything else came in through ``extra=``
_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """One JSON object per record: level, logger, event and ``extra=`` fields."""

    def __init__(self, static_fields: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__()
        self.static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        base: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **self.static_fields,
        }
        base.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED and not key.startswith("_")
        )
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(base, default=str).decode()


def setup_logging(level_name: Optional[str] = None, *, stream: Optional[TextIO] = None) -> None:
    """Route the root logger through ``JsonFormatter``; level defaults to ``LOG_LEVEL``."""

    level_name = (level_name or os.getenv("LOG_LEVEL", "INFO")).upper()
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter({"service": "perps-engine"}))
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    root.addHandler(handler)


def with_trace(extra: Optional[Dict[str, Any]] = None, *, trace_id: Optional[str] = None) -> Dict[str, Any]:
    """Return ``extra`` with a ``trace_id`` added (a fresh one unless given)."""

    payload: Dict[str, Any] = {_TRACE_KEY: trace_id or uuid.uuid4().hex}
    if extra:
        payload.update(extra)
    return payload


__all__ = ["JsonFormatter", "setup_logging", "with_trace"]
