"""JSON-lines logging for the console, the scheduler and the relay.

Console modules log under ``console.<component>`` and attach sync context
through ``extra=`` (resource path, record counts, run id, relay base URL).
Third-party loggers that matter at runtime are routed through the same
handler, held at WARNING so httpx does not log every page request.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Iterable, Optional, TextIO

ROOT_LOGGER = "console"

SYNC_FIELDS = ("resource", "records", "duration_s", "run_id", "base_url", "silent")

LIBRARY_LOGGERS = ("httpx", "apscheduler", "uvicorn.error")


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with any known sync fields merged in."""

    def __init__(self, fields: Iterable[str] = SYNC_FIELDS) -> None:
        super().__init__()
        self.fields = tuple(fields)

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["error_type"] = type(record.exc_info[1]).__name__
            entry["exception"] = self.formatException(record.exc_info)
        for key in self.fields:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        return json.dumps(entry, default=str)


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    logger.setLevel(level)
    logger.handlers[:] = [handler]
    logger.propagate = False


def configure_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> logging.Handler:
    """Install the JSON handler on the console tree and the library loggers.

    Calling it again replaces the handler rather than adding a second one.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter())
    console_level = getattr(logging, level.upper(), logging.INFO)

    _attach(logging.getLogger(ROOT_LOGGER), handler, console_level)
    for name in LIBRARY_LOGGERS:
        _attach(logging.getLogger(name), handler, max(console_level, logging.WARNING))
    return handler
