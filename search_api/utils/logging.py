"""
Logging setup for the Search API.

Log lines are single JSON objects. Besides the usual timestamp, level,
logger and message they carry:

- `request_id` of the HTTP request being served (set by the request-id
  middleware through `request_id_ctx`)
- any dispatch context passed via `extra=`, e.g. a failed backend call logs
  `extra={"server": ..., "index": ..., "operation": ...}`
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Keys copied from `extra=` into the JSON object.
CONTEXT_FIELDS = (
    "server",
    "index",
    "operation",
    "task_id",
    "backend",
    "rid",
    "method",
    "path",
    "status",
    "duration_ms",
    "body",
)

_QUIET_LOGGERS = ("uvicorn.access", "apscheduler", "sqlalchemy.engine", "httpx")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        rid = request_id_ctx.get()
        if rid:
            entry["request_id"] = rid
        entry.update(
            (key, getattr(record, key)) for key in CONTEXT_FIELDS if getattr(record, key, None) is not None
        )
        if record.exc_info:
            entry["exc_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None
            entry["exc_info"] = self.formatException(record.exc_info)
        if record.levelno <= logging.DEBUG:
            entry["where"] = f"{record.module}:{record.lineno}"
        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(level: Union[str, int] = "INFO", *, json_output: bool = True) -> None:
    """Route the root logger to stdout, replacing any handlers already installed."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(
        JsonFormatter() if json_output else logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
