"""
Tokenbound Event Infrastructure

Typed contract events and an in-process event bus.

Contract code emits events into the frame it runs in. Events emitted by a
frame that later reverts are discarded together with the frame's state; the
ledger publishes the surviving events to the bus only after the enclosing
transaction commits.

Usage
─────

    from tokenbound.events import AccountCreated, get_event_bus

    bus = get_event_bus()

    @bus.subscribe(AccountCreated)
    def on_created(event: AccountCreated):
        print(f"wallet {event.account} created")

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Set,
    Type,
)

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for all events in the system.

    Events are immutable facts representing something that happened.
    ``address`` is the account whose code emitted the event (for delegated
    code this is the storage owner, i.e. the proxy).
    """

    address: str = ""
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = None

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str, sort_keys=True)

    def digest(self) -> str:
        """Deterministic digest of the event payload (metadata excluded)."""
        payload = {
            k: v for k, v in self.to_dict().items()
            if k not in ("event_id", "event_timestamp", "correlation_id")
        }
        return hashlib.sha256(json.dumps(payload, sort_keys=True, default=str).encode()).hexdigest()


# ════════════════════════════════════════════════════════════════════════════
# CONTRACT EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class AccountCreated(Event):
    """Emitted by the registry when a wallet proxy is deployed."""
    account: str = ""
    chain_id: int = 0
    token_contract: str = ""
    token_id: int = 0
    implementation_index: int = 0


@dataclass
class Initialized(Event):
    """Emitted by a proxy when its one-shot initializer runs."""
    implementation: str = ""
    nonce: int = 0


@dataclass
class Upgraded(Event):
    """Emitted when a proxy's implementation pointer changes."""
    implementation: str = ""
    nonce: int = 0


@dataclass
class TransactionExecuted(Event):
    """Emitted by a wallet after a successful execTransaction."""
    target: str = ""
    value: int = 0
    operation: int = 0
    nonce: int = 0


@dataclass
class Transfer(Event):
    """ERC-721 transfer."""
    from_address: str = ""
    to: str = ""
    token_id: int = 0


@dataclass
class TransferSingle(Event):
    """ERC-1155 single transfer."""
    operator: str = ""
    from_address: str = ""
    to: str = ""
    token_id: int = 0
    amount: int = 0


@dataclass
class TransferBatch(Event):
    """ERC-1155 batch transfer."""
    operator: str = ""
    from_address: str = ""
    to: str = ""
    token_ids: List[int] = field(default_factory=list)
    amounts: List[int] = field(default_factory=list)


@dataclass
class ApprovalForAll(Event):
    """Operator approval change on a collaborator."""
    owner: str = ""
    operator: str = ""
    approved: bool = False


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]


@dataclass
class EventHandlerRegistration:
    """Registration record for an event handler."""
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0
    filter_func: Optional[Callable[[Event], bool]] = None


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        super().__init__(f"Handler {handler.__name__} failed for {event.event_type}: {cause}")


class EventBus:
    """
    In-memory event bus for pub/sub communication.

    Handlers run synchronously in priority order. A failing handler never
    affects ledger state (events are published after commit); its error is
    counted and passed to ``on_error``.
    """

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._handlers: List[EventHandlerRegistration] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._published_count = 0
        self._handled_count = 0
        self._error_count = 0

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
        filter_func: Optional[Callable[[Event], bool]] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """Decorator to subscribe a handler to event types."""
        def decorator(handler: EventHandler) -> EventHandler:
            registration = EventHandlerRegistration(
                handler=handler,
                event_types=set(event_types) if event_types else {Event},
                priority=priority,
                filter_func=filter_func,
            )
            with self._lock:
                self._handlers.append(registration)
                self._handlers.sort(key=lambda r: -r.priority)
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        with self._lock:
            original_len = len(self._handlers)
            self._handlers = [r for r in self._handlers if r.handler != handler]
            return len(self._handlers) < original_len

    def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers."""
        with self._lock:
            self._published_count += 1
            handlers_to_call = [
                r for r in self._handlers
                if any(isinstance(event, t) for t in r.event_types)
                and (r.filter_func is None or r.filter_func(event))
            ]

        for registration in handlers_to_call:
            self._call_handler(registration.handler, event)

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        try:
            handler(event)
            with self._lock:
                self._handled_count += 1
        except Exception as e:
            with self._lock:
                self._error_count += 1
            error = EventHandlerError(event, handler, e)
            logger.warning("%s", error)
            if self._on_error:
                self._on_error(error)

    @property
    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "published_count": self._published_count,
                "handled_count": self._handled_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }


_event_bus: Optional[EventBus] = None
_event_bus_lock = threading.Lock()


def get_event_bus() -> EventBus:
    """Get the global event bus instance."""
    global _event_bus
    with _event_bus_lock:
        if _event_bus is None:
            _event_bus = EventBus()
        return _event_bus
