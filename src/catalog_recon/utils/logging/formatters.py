"""
Log formatters.

JSONFormatter emits one JSON object per record for log shippers; job
context (job id, task, owner, side) is grouped under ``job`` so records of
one reconciliation can be filtered together. ConsoleFormatter is the
human-readable form with the same context appended.
"""

import json
import logging
import socket
import sys
import traceback
from datetime import UTC, datetime

# LogRecord attributes that are not user context
_RESERVED_FIELDS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

JOB_FIELDS = ("job_id", "task", "owner", "side")


def _extra_fields(record: logging.LogRecord) -> dict:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_FIELDS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """
    Structured formatter.

    Fields: level, logger, message, app, timestamp, hostname, source,
    thread, plus ``job`` and ``context`` when the record carries extras and
    ``exception`` when it carries exc_info.
    """

    def __init__(
        self,
        include_timestamp: bool = True,
        include_hostname: bool = True,
        app_name: str = "catalog-reconcile",
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.app_name = app_name
        self.hostname = socket.gethostname() if include_hostname else None

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "app": self.app_name,
        }
        if self.include_timestamp:
            payload["timestamp"] = datetime.fromtimestamp(record.created, UTC).isoformat(
                timespec="milliseconds"
            )
        if self.hostname:
            payload["hostname"] = self.hostname

        payload["source"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
        }
        # Deep comparisons run on worker threads
        payload["thread"] = record.threadName

        context = _extra_fields(record)
        job = {key: context.pop(key) for key in JOB_FIELDS if key in context}
        if job:
            payload["job"] = job
        if context:
            payload["context"] = context

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
            }

        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """Single-line formatter with optional ANSI level colours."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)

        color = self.COLORS.get(record.levelname)
        if self.use_colors and color:
            # Colour only this rendering; the record is shared with other handlers
            text = text.replace(f"[{record.levelname}]", f"[{color}{record.levelname}{self.RESET}]", 1)

        context = _extra_fields(record)
        if context:
            text += " [" + ", ".join(f"{key}={value}" for key, value in context.items()) + "]"
        return text
