"""
Ticketmint Observability

Structured logging with correlation ids, operation timing and a hash-chained
audit trail of committed operator actions.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │            Ledger / TicketProgram / Verifier             │
    │  logger.info("msg", nft_id=x)   audit.log(action, ...)   │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                      TicketLogger                        │
    │        correlation id (transaction id), layer, context   │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │        StructuredHandler (JSON)  │  TextFormatter        │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2026 The Ticketmint Authors. All rights reserved.
"""

from __future__ import annotations

import contextvars
import functools
import hashlib
import json
import logging
import sys
import threading
import time
import traceback
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, TypeVar

# Request-scoped correlation id; the ledger binds it to the transaction id.
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class LogLevel(Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class Layer(Enum):
    """Components, used to categorize log records."""
    CODEC = "codec"
    VERIFIER = "verifier"
    LIFECYCLE = "lifecycle"
    PROGRAM = "program"
    LEDGER = "ledger"
    CLIENT = "client"
    SIGNING = "signing"
    CONFIG = "config"
    CLI = "cli"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    layer: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


def _event_from_record(record: logging.LogRecord) -> LogEvent:
    event = LogEvent(
        timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        level=record.levelname.lower(),
        logger=record.name,
        message=record.getMessage(),
        correlation_id=correlation_id_var.get(),
        layer=getattr(record, "layer", ""),
        operation=getattr(record, "operation", ""),
        duration_ms=getattr(record, "duration_ms", None),
        error_code=getattr(record, "error_code", ""),
        context=getattr(record, "context", {}),
    )
    if record.exc_info:
        event.exception = "".join(traceback.format_exception(*record.exc_info))
    return event


class StructuredHandler(logging.Handler):
    """Logging handler that writes one JSON object per record."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            stream = self.stream or sys.stderr
            stream.write(_event_from_record(record).to_json() + "\n")
            stream.flush()
        except Exception:
            self.handleError(record)


class TextFormatter(logging.Formatter):
    """Plain single-line format: time level logger [cid] message key=value..."""

    def format(self, record: logging.LogRecord) -> str:
        event = _event_from_record(record)
        parts = [event.timestamp, event.level.upper(), event.logger]
        if event.correlation_id:
            parts.append(f"[{event.correlation_id}]")
        parts.append(event.message)
        for key, value in sorted(event.context.items()):
            parts.append(f"{key}={value}")
        if event.duration_ms is not None:
            parts.append(f"duration_ms={event.duration_ms:.2f}")
        line = " ".join(parts)
        if event.exception:
            line += "\n" + event.exception
        return line


class TicketLogger:
    """
    Structured logger for ticketmint components.

    Every record carries the current correlation id, the component layer and
    keyword context.
    """

    def __init__(self, name: str, layer: Layer, level: Optional[LogLevel] = None):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"ticketmint.{layer.value}.{name}")
        if level is not None:
            self._logger.setLevel(getattr(logging, level.value.upper()))

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def isEnabledFor(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.INFO if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            duration_ms=duration_ms,
            **context,
        )


def configure_logging(level: str = "info", log_format: str = "json", stream: Any = None) -> logging.Handler:
    """Attach a single handler to the `ticketmint` logger tree.

    Replaces any handler installed by a previous call, so repeated calls (one
    per CLI invocation in tests) do not duplicate output.
    """
    root = logging.getLogger("ticketmint")
    for handler in list(root.handlers):
        if getattr(handler, "_ticketmint", False):
            root.removeHandler(handler)

    if log_format == "text":
        handler: logging.Handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(TextFormatter())
    else:
        handler = StructuredHandler(stream)
    handler._ticketmint = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper()))
    return handler


def generate_correlation_id() -> str:
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation ID for the current context."""
    return correlation_id_var.set(correlation_id)


def reset_correlation_id(token: contextvars.Token) -> None:
    correlation_id_var.reset(token)


def get_correlation_id() -> str:
    """Get the current correlation ID, creating one if unset."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def get_logger(name: str, layer: Layer) -> TicketLogger:
    return TicketLogger(name, layer)


T = TypeVar("T")


def timed_operation(
    logger: TicketLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.operation(operation_name, duration_ms, success)
        return wrapper
    return decorator


# =============================================================================
# AUDIT TRAIL
# =============================================================================


@dataclass
class AuditEvent:
    """One committed operator or claimant action."""
    event_id: str
    timestamp: str
    actor: str
    action: str
    resource_type: str
    resource_id: str
    outcome: str  # committed, rejected
    correlation_id: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    previous_hash: str = ""
    event_hash: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AuditLogger:
    """
    Append-only audit trail with hash chaining.

    Each entry's hash covers its content and the previous entry's hash, so a
    removed or edited entry breaks `verify_chain()`.
    """

    GENESIS = "genesis"

    def __init__(self, logger: TicketLogger):
        self._logger = logger
        self._last_hash = self.GENESIS
        self._entries: List[AuditEvent] = []
        self._lock = threading.Lock()

    @staticmethod
    def _compute_hash(event: AuditEvent, previous_hash: str) -> str:
        body = event.to_dict()
        body.pop("event_hash", None)
        body["previous_hash"] = previous_hash
        data = json.dumps(body, sort_keys=True, default=str)
        return hashlib.sha256(data.encode()).hexdigest()

    def log(
        self,
        actor: str,
        action: str,
        resource_type: str,
        resource_id: str,
        outcome: str,
        **details: Any,
    ) -> AuditEvent:
        event = AuditEvent(
            event_id=uuid.uuid4().hex,
            timestamp=datetime.now(timezone.utc).isoformat(),
            actor=actor,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            outcome=outcome,
            correlation_id=correlation_id_var.get(),
            details=details,
        )

        with self._lock:
            event.previous_hash = self._last_hash
            event.event_hash = self._compute_hash(event, self._last_hash)
            self._last_hash = event.event_hash
            self._entries.append(event)

        self._logger.info(
            f"AUDIT: {action} on {resource_type}/{resource_id}",
            operation="audit",
            actor=actor,
            outcome=outcome,
            event_hash=event.event_hash,
        )
        return event

    @property
    def entries(self) -> List[AuditEvent]:
        with self._lock:
            return list(self._entries)

    def verify_chain(self) -> bool:
        previous = self.GENESIS
        for entry in self.entries:
            if entry.previous_hash != previous:
                return False
            if self._compute_hash(entry, previous) != entry.event_hash:
                return False
            previous = entry.event_hash
        return True
