"""
Tokenbound Observability

Structured logging, transaction tracing and the audit trail of the ledger.

Every ledger transaction runs inside exactly one span. While the span is
active the ledger records each frame it executes (message calls, delegated
calls and deployments) as a span event carrying the frame kind and depth, so
an exported span is the transaction's call tree in execution order.

    transaction ──▶ Span ──▶ [call@0, create2@1, call@1, call@2, ...] ──▶ exporters
                     │
                     └──▶ AuditLogger (one hash-chained entry per transaction)

Log records carry the caller's correlation id and, inside a transaction,
the trace and span ids of the active span.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
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
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)
current_span_var: contextvars.ContextVar[Optional["Span"]] = contextvars.ContextVar(
    "current_span", default=None
)


class TokenboundLayer(Enum):
    """Component a log record or span belongs to."""
    LEDGER = "ledger"
    REGISTRY = "registry"
    WALLET = "wallet"
    MIGRATION = "migration"
    CLI = "cli"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# TRACING
# =============================================================================

@dataclass
class SpanEvent:
    name: str
    timestamp: str
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Span:
    """
    Tracing span of one ledger transaction.

    Nested frames are not child spans; the ledger appends one ``SpanEvent``
    per frame through :func:`record_span_event`.
    """
    trace_id: str
    span_id: str
    name: str
    layer: str
    start_time: float = field(default_factory=time.monotonic)
    end_time: Optional[float] = None
    status: str = "ok"
    attributes: Dict[str, Any] = field(default_factory=dict)
    events: List[SpanEvent] = field(default_factory=list)

    def record_event(self, name: str, **attributes: Any) -> None:
        self.events.append(SpanEvent(name=name, timestamp=_utc_now(), attributes=attributes))

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def set_status(self, status: str, message: str = "") -> None:
        self.status = status
        if message:
            self.attributes["status_message"] = message

    @property
    def duration_ms(self) -> float:
        end = self.end_time if self.end_time is not None else time.monotonic()
        return (end - self.start_time) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "name": self.name,
            "layer": self.layer,
            "duration_ms": round(self.duration_ms, 2),
            "status": self.status,
            "attributes": self.attributes,
            "events": [asdict(e) for e in self.events],
        }


class Tracer:
    """Opens transaction spans and hands finished ones to exporters."""

    def __init__(self):
        self._exporters: List[Callable[[Span], None]] = []

    def add_exporter(self, exporter: Callable[[Span], None]) -> None:
        self._exporters.append(exporter)

    def remove_exporter(self, exporter: Callable[[Span], None]) -> None:
        self._exporters.remove(exporter)

    @contextmanager
    def span(self, name: str, layer: TokenboundLayer, **attributes: Any) -> Iterator[Span]:
        """Run the body inside a new span; a raised exception marks it as failed."""
        span = Span(
            trace_id=uuid.uuid4().hex,
            span_id=uuid.uuid4().hex[:16],
            name=name,
            layer=layer.value,
            attributes=dict(attributes),
        )
        token = current_span_var.set(span)
        try:
            yield span
        except Exception as e:
            span.set_status("error", str(e))
            span.set_attribute("exception_type", type(e).__name__)
            raise
        finally:
            current_span_var.reset(token)
            span.end_time = time.monotonic()
            self._export(span)

    def _export(self, span: Span) -> None:
        for exporter in list(self._exporters):
            try:
                exporter(span)
            except Exception:
                logging.getLogger(__name__).exception("span exporter failed")


def record_span_event(name: str, **attributes: Any) -> None:
    """Append an event to the active span. Outside a transaction this does nothing."""
    span = current_span_var.get()
    if span is not None:
        span.record_event(name, **attributes)


_tracer: Optional[Tracer] = None


def get_tracer() -> Tracer:
    global _tracer
    if _tracer is None:
        _tracer = Tracer()
    return _tracer


# =============================================================================
# LOGGING
# =============================================================================

@dataclass
class LogEvent:
    """One structured log line."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    trace_id: str = ""
    span_id: str = ""
    layer: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_json(self) -> str:
        data = {k: v for k, v in asdict(self).items() if v not in (None, "", {})}
        return json.dumps(data, default=str)


class StructuredHandler(logging.Handler):
    """Writes each record as a JSON line."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            span = current_span_var.get()
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                trace_id=span.trace_id if span else "",
                span_id=span.span_id if span else "",
                layer=getattr(record, "layer", ""),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )
            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            self.stream.write(event.to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class TextHandler(logging.StreamHandler):
    """Plain text lines for ``log_format: text``."""

    def __init__(self, stream: Any = None):
        super().__init__(stream or sys.stderr)
        self.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))


class TokenboundLogger:
    """
    Logger bound to a component layer.

    Keyword arguments other than ``operation``, ``error_code`` and
    ``duration_ms`` end up in the record's ``context`` mapping.
    """

    def __init__(self, name: str, layer: TokenboundLayer, level: str = "info", log_format: str = "json"):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"tokenbound.{layer.value}.{name}")
        self._logger.setLevel(level.upper())

        if not any(isinstance(h, (StructuredHandler, TextHandler)) for h in self._logger.handlers):
            self._logger.addHandler(StructuredHandler() if log_format == "json" else TextHandler())

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
        self._logger.log(
            level,
            message,
            exc_info=exc_info,
            extra={
                "layer": self.layer.value,
                "operation": operation,
                "error_code": error_code,
                "duration_ms": duration_ms,
                "context": context,
            },
        )

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(self, message: str, error_code: str = "", exc_info: bool = False, **context: Any) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(self, name: str, duration_ms: float, success: bool = True, **context: Any) -> None:
        self._log(
            logging.INFO if success else logging.WARNING,
            f"Operation {name} {'completed' if success else 'failed'}",
            operation=name,
            duration_ms=duration_ms,
            **context,
        )


def get_logger(name: str, layer: TokenboundLayer) -> TokenboundLogger:
    """Logger configured from the ``observability`` config section."""
    from tokenbound.config import get_config
    obs = get_config().observability
    return TokenboundLogger(name, layer, level=obs.log_level.get(), log_format=obs.log_format.get())


def generate_correlation_id() -> str:
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    return correlation_id_var.set(correlation_id)


T = TypeVar("T")


def timed_operation(logger: TokenboundLogger, operation_name: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Log the duration and outcome of every call to the decorated function."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            success = False
            try:
                result = func(*args, **kwargs)
                success = True
                return result
            finally:
                logger.operation(operation_name, (time.monotonic() - start) * 1000, success)
        return wrapper
    return decorator


# =============================================================================
# AUDIT TRAIL
# =============================================================================

@dataclass
class AuditEvent:
    """Outcome of one ledger transaction."""
    event_id: str
    timestamp: str
    actor: str
    action: str
    resource_type: str
    resource_id: str
    outcome: str
    correlation_id: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _AuditEntry:
    event: AuditEvent
    previous: str
    hash: str


class AuditLogger:
    """
    Append-only, hash-chained audit trail.

    Entry ``n`` hashes its event together with the hash of entry ``n - 1``;
    editing any recorded event breaks :meth:`verify_chain` from that entry on.
    """

    GENESIS = "genesis"

    def __init__(self, logger: TokenboundLogger):
        self._logger = logger
        self._entries: List[_AuditEntry] = []
        self._lock = threading.Lock()

    @staticmethod
    def _link(event: AuditEvent, previous: str) -> str:
        payload = json.dumps(asdict(event), sort_keys=True, default=str) + previous
        return hashlib.sha256(payload.encode()).hexdigest()

    @property
    def head(self) -> str:
        return self._entries[-1].hash if self._entries else self.GENESIS

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
            timestamp=_utc_now(),
            actor=actor,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            outcome=outcome,
            correlation_id=correlation_id_var.get(),
            details=details,
        )
        with self._lock:
            previous = self.head
            entry = _AuditEntry(event=event, previous=previous, hash=self._link(event, previous))
            self._entries.append(entry)

        self._logger.info(
            f"AUDIT: {action} on {resource_type}/{resource_id}",
            operation="audit",
            outcome=outcome,
            actor=actor,
            event_hash=entry.hash,
        )
        return event

    @property
    def entries(self) -> List[AuditEvent]:
        with self._lock:
            return [e.event for e in self._entries]

    def verify_chain(self) -> bool:
        with self._lock:
            previous = self.GENESIS
            for entry in self._entries:
                if entry.previous != previous or self._link(entry.event, previous) != entry.hash:
                    return False
                previous = entry.hash
            return True
