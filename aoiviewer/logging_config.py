"""Root logger setup with JSON or human-readable text output."""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import datetime, timezone

from aoiviewer.services.request_context import get_request_id

# Attribute names every LogRecord carries; anything else came in via ``extra=``.
_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


def _format_exc(record: logging.LogRecord) -> str | None:
    if record.exc_info and record.exc_info[0] is not None:
        return "".join(traceback.format_exception(*record.exc_info))
    return None


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            entry["request_id"] = request_id

        entry.update(
            (k, v)
            for k, v in record.__dict__.items()
            if k not in _RESERVED_ATTRS and not k.startswith("_")
        )

        exc_text = _format_exc(record)
        if exc_text:
            entry["exception"] = exc_text

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """``timestamp LEVEL [request-id] logger - message`` for local runs."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
            "%Y-%m-%d %H:%M:%S"
        )
        request_id = get_request_id()
        rid = f"[{request_id[:12]}] " if request_id else ""

        line = f"{ts} {record.levelname:<8} {rid}{record.name} - {record.getMessage()}"

        exc_text = _format_exc(record)
        if exc_text:
            line = f"{line}\n{exc_text}"
        return line


def setup_logging(log_level: str = "INFO", log_format: str = "text") -> None:
    """Install a single stderr handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        JSONFormatter() if log_format.lower() == "json" else TextFormatter()
    )
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
