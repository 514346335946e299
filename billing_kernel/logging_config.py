"""
Structured JSON logging for the billing kernel.

Every logger lives under the ``billing_kernel`` namespace and writes one JSON
object per line.  Services bind the counterparty and actor of the operation
in progress with ``LogContext.bind`` so that every line emitted inside the
operation carries them.
"""

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

_LOGGER_PREFIX = "billing_kernel"

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class LogContext:
    """Per-operation log fields, safe across threads."""

    _fields: dict[str, ContextVar[str | None]] = {
        "counterparty_id": ContextVar("log_counterparty_id", default=None),
        "actor_id": ContextVar("log_actor_id", default=None),
    }

    @classmethod
    def current(cls) -> dict[str, str]:
        """Bound fields, skipping unset ones."""
        return {
            name: value
            for name, var in cls._fields.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in cls._fields.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **values: str | None) -> Iterator[None]:
        """Set known fields for the duration of the block.  Unknown names are ignored."""
        tokens = [
            (cls._fields[name], cls._fields[name].set(str(value)))
            for name, value in values.items()
            if name in cls._fields and value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


class StructuredFormatter(logging.Formatter):
    """One JSON line per record; ``extra`` keys and bound context become top-level fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.current(),
        }
        payload.update(
            (key, val) for key, val in vars(record).items()
            if key not in _STDLIB_KEYS and key not in payload
        )

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if hasattr(exc, "code"):
                payload["exc_code"] = exc.code
            for key, val in vars(exc).items():
                if not key.startswith("_"):
                    payload[f"exc_{key}"] = val
            payload["traceback"] = self.formatException(record.exc_info)

        # UUID, Decimal and dates are written as strings
        return json.dumps(payload, default=str)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the ``billing_kernel`` logger.  Later calls are no-ops."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False
    handler = handler if handler is not None else logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)


def reset_logging() -> None:
    """Undo configure_logging.  FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
