"""
Structured JSON logging for the document engine.

Every record is one JSON line: ``ts``, ``level``, ``logger`` and
``message``, then whatever document the caller is working on (bound with
``LogContext.bind``), then the record's ``extra`` fields.  A logged
``FieldworkError`` contributes its code and structured attributes so an
overpayment or an illegal transition can be found by field, not by text.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "fieldwork_kernel"


class LogContext:
    """
    Which document an operation is touching, and on whose behalf.

    ``channel`` says how the change arrived: ``staff``, ``payment`` or
    ``public`` (the client-facing page, which has no actor).
    """

    FIELDS = ("organization_id", "actor_id", "document_kind", "document_id", "channel")

    _current: ContextVar[dict[str, str]] = ContextVar("fieldwork_log_context", default={})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Add fields for the duration of the block; ``None`` values are skipped."""
        unknown = set(fields) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
        merged = dict(cls._current.get())
        for name, value in fields.items():
            if value is not None:
                merged[name] = value.value if isinstance(value, Enum) else str(value)
        token = cls._current.set(merged)
        try:
            yield
        finally:
            cls._current.reset(token)

    @classmethod
    def current(cls) -> dict[str, str]:
        return dict(cls._current.get())

    @classmethod
    def clear(cls) -> None:
        cls._current.set({})


_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    # Money and quantities stay exact as strings
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.current())
        payload.update(
            (key, value) for key, value in vars(record).items()
            if key not in _STDLIB_KEYS and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {"exc_type": type(exc).__name__, "exc_message": str(exc)}
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # FieldworkError subclasses carry their data as attributes
        for name, value in vars(exc).items():
            if not name.startswith("_") and name != "code":
                fields[f"exc_{name}"] = value
        return fields


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the fieldwork_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the fieldwork_kernel logger (idempotent)."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False
    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root_logger.addHandler(target)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
