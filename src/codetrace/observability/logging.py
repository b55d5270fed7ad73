"""Structured logging for ingestion runs and searches.

An ingestion run touches dozens of chapters and can take an hour; a search is
a few milliseconds. Both get a run id in a ContextVar so every line they emit,
across awaits, can be grouped after the fact. JSON output carries the unit
fields (source, chapter, state) as top-level keys.
"""

import json
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Passed via logger.info(..., extra={...}) by the ingestion coordinator
EXTRA_FIELDS = ("source", "chapter", "state", "provisions", "duration_ms")

QUIET_LOGGERS = ("httpx", "httpcore", "pdfminer", "aiosqlite")

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s%(run)s: %(message)s"


def get_correlation_id() -> str:
    """Return the current run id, or empty string outside a run."""
    return correlation_id.get()


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def correlation_scope(run_id: str | None = None) -> Iterator[str]:
    """Tag every log line emitted inside the block with one run id.

    Nested scopes keep the enclosing id unless one is given explicitly.
    """
    token = correlation_id.set(run_id or correlation_id.get() or new_correlation_id())
    try:
        yield correlation_id.get()
    finally:
        correlation_id.reset(token)


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        run_id = correlation_id.get()
        if run_id:
            entry["correlation_id"] = run_id

        entry.update(
            (key, getattr(record, key)) for key in EXTRA_FIELDS if getattr(record, key, None) is not None
        )

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines with the run id appended to the logger name."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        run_id = correlation_id.get()
        record.run = f" [{run_id}]" if run_id else ""
        return super().format(record)


def setup_logging(json_format: bool = True, level: str = "INFO") -> None:
    """Install a single root handler.

    Args:
        json_format: JSON lines for unattended runs, text for a terminal.
        level: Root log level name (DEBUG, INFO, WARNING, ERROR).
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if json_format else TextFormatter())
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
