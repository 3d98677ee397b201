"""
Structured JSON logging for billtrack.

Every logger lives under the ``billtrack`` namespace and writes one JSON
object per line.  Request-scoped identifiers (who is acting, on which
company, transaction or payment) travel in ``LogContext`` and are merged
into every line without being passed to each call.

Usage:
    from billtrack_kernel.logging_config import LogContext, get_logger

    logger = get_logger("modules.settlement")

    with LogContext.bind(actor_id=actor_id, payment_id=payment.id):
        logger.info("payment_settled", extra={"amount": payment.amount})
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
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "billtrack"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"billtrack_{name}", default=None)
    for name in (
        "correlation_id",
        "actor_id",
        "company_id",
        "transaction_id",
        "payment_id",
    )
}


def _context_var(name: str) -> ContextVar[str | None]:
    try:
        return _CONTEXT_VARS[name]
    except KeyError:
        raise TypeError(
            f"unknown log context field {name!r}; "
            f"expected one of {', '.join(_CONTEXT_VARS)}"
        ) from None


class LogContext:
    """Request-scoped identifiers merged into every log line.

    Backed by ``ContextVar`` so values never leak across threads or tasks.
    Values are stored as strings; UUIDs can be passed straight through.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        """Set context fields.  None values leave the field untouched."""
        for name, value in fields.items():
            var = _context_var(name)
            if value is not None:
                var.set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        """Populated fields only."""
        return {
            name: value
            for name, var in _CONTEXT_VARS.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _CONTEXT_VARS.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Set fields for the duration of a ``with`` block, then restore."""
        tokens = [
            (var, var.set(str(value)))
            for var, value in ((_context_var(n), v) for n, v in fields.items())
            if value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON formatting
# ---------------------------------------------------------------------------

_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    # Money stays exact: Decimals are written as strings, never floats.
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """``exc_*`` keys for an exception, including BillTrackError context."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for attr, value in vars(exc).items():
        if attr.startswith("_") or attr in ("args", "code"):
            continue
        fields[f"exc_{attr}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for attr, value in vars(record).items():
            if attr not in _RESERVED_ATTRS:
                payload.setdefault(attr, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """``billtrack.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_setup_lock = threading.Lock()
_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``billtrack`` logger.

    Only the first call has an effect until ``reset_logging``.
    """
    global _handler
    with _setup_lock:
        if _handler is not None:
            return
        _handler = handler or logging.StreamHandler(stream or sys.stderr)

    _handler.setFormatter(StructuredFormatter())
    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(_handler)


def reset_logging() -> None:
    """Detach the installed handler and forget the configuration.  Tests only."""
    global _handler
    with _setup_lock:
        handler, _handler = _handler, None
    root = logging.getLogger(_LOGGER_PREFIX)
    if handler is not None:
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)
