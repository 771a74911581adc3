"""Logging setup with archive-run correlation fields.

Every record emitted while an archive run is in progress carries the run id
and, inside a bucket, the date key being compacted, so a failed bucket can
be traced through sweep, compression and cleanup lines.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime


@dataclass(frozen=True, slots=True)
class CorrelationContext:
    run_id: str | None = None
    date_key: str | None = None


_EMPTY_CONTEXT = CorrelationContext()
_CORRELATION_CONTEXT: contextvars.ContextVar[CorrelationContext | None] = contextvars.ContextVar(
    "calltrail_correlation_context",
    default=None,
)


def get_correlation_context() -> CorrelationContext:
    context = _CORRELATION_CONTEXT.get()
    if context is None:
        return _EMPTY_CONTEXT
    return context


class CorrelationFilter(logging.Filter):
    """Inject correlation fields into every ``LogRecord`` before formatting."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = get_correlation_context()
        record.run_id = context.run_id
        record.date_key = context.date_key
        return True


def _correlation_fields(record: logging.LogRecord) -> dict[str, str]:
    fields = {"run_id": getattr(record, "run_id", None), "date_key": getattr(record, "date_key", None)}
    return {name: value for name, value in fields.items() if value is not None}


class _TextFormatter(logging.Formatter):
    """Plain lines; ``[run=... day=...]`` is appended only inside an archive run."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _correlation_fields(record)
        if not fields:
            return line
        labels = {"run_id": "run", "date_key": "day"}
        tag = " ".join(f"{labels[name]}={value}" for name, value in fields.items())
        first, sep, rest = line.partition("\n")
        return f"{first} [{tag}]{sep}{rest}"


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_correlation_fields(record),
        }
        if record.exc_info is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def setup_logging(level: int | str = logging.INFO, json_output: bool = False) -> None:
    """Route all logging to stderr, leaving stdout for command output."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.filters.clear()

    handler = logging.StreamHandler(stream=sys.stderr)
    formatter: logging.Formatter = _JsonFormatter() if json_output else _TextFormatter()
    handler.setFormatter(formatter)

    correlation_filter = CorrelationFilter()
    handler.addFilter(correlation_filter)
    root_logger.addFilter(correlation_filter)
    root_logger.addHandler(handler)


@contextmanager
def correlation_scope(
    *,
    run_id: str | None = None,
    date_key: str | None = None,
) -> Iterator[None]:
    """Temporarily apply correlation IDs; nested scopes inherit unset fields."""

    current = get_correlation_context()
    updated = CorrelationContext(
        run_id=current.run_id if run_id is None else run_id,
        date_key=current.date_key if date_key is None else date_key,
    )
    token = _CORRELATION_CONTEXT.set(updated)
    try:
        yield
    finally:
        _CORRELATION_CONTEXT.reset(token)


__all__ = [
    "CorrelationContext",
    "CorrelationFilter",
    "correlation_scope",
    "get_correlation_context",
    "setup_logging",
]
