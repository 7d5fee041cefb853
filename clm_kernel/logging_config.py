"""
Structured logging for the contract kernel.

Every logger handed out by ``get_logger`` lives under the ``clm_kernel``
namespace and writes one JSON object per line.  Request-scoped identifiers
(tenant, contract, actor, correlation and trace ids) are carried in
``LogContext`` and stamped onto every line emitted while they are set.

Line layout::

    {"ts": ..., "level": ..., "logger": ..., "message": ...,
     <context fields>, <extra= fields>, <exc_* fields>}
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

ROOT_LOGGER_NAME = "clm_kernel"

CONTEXT_FIELDS = (
    "correlation_id",
    "organization_id",
    "contract_id",
    "actor_id",
    "trace_id",
)

_context: ContextVar[dict[str, str]] = ContextVar("clm_log_context", default={})


class LogContext:
    """
    Request-scoped log fields, safe across threads and asyncio tasks.

    Values are held in a single ``ContextVar`` mapping that is replaced, never
    mutated, so a copy taken by a child context cannot see later writes.
    """

    @staticmethod
    def _checked(fields: dict[str, Any]) -> dict[str, str]:
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
        return {k: str(v) for k, v in fields.items() if v is not None}

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Overwrite the given fields; None values leave a field untouched."""
        updates = cls._checked(fields)
        if updates:
            _context.set({**_context.get(), **updates})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block."""
        token = _context.set({**_context.get(), **cls._checked(fields)})
        try:
            yield cls
        finally:
            _context.reset(token)


# Attributes every LogRecord carries; anything else arrived via ``extra=``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, tuple):
        return list(value)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """Render a ``LogRecord`` as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                line.setdefault(key, value)
        if record.exc_info and record.exc_info[1] is not None:
            line.update(self._exception_fields(record))
        return json.dumps(line, default=_to_json)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # Kernel errors keep their structured attributes on the instance
        for name, value in vars(exc).items():
            if name != "code" and not name.startswith("_"):
                fields[f"exc_{name}"] = value
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


def get_logger(name: str) -> logging.Logger:
    """Return ``clm_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_setup_lock = threading.Lock()
_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``clm_kernel`` logger.

    Only the first call after start-up (or after ``reset_logging``) has any
    effect.  ``level`` accepts a number or a level name such as ``"DEBUG"``.
    """
    global _handler
    with _setup_lock:
        if _handler is not None:
            return
        _handler = handler or logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(StructuredFormatter())

        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(level.upper() if isinstance(level, str) else level)
        root.propagate = False
        root.addHandler(_handler)


def reset_logging() -> None:
    """Detach every handler so the next ``configure_logging`` call applies."""
    global _handler
    with _setup_lock:
        _handler = None
        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
