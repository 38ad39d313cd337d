"""
Ticketmint Events

Notifications emitted by the ticket lifecycle and consumed by external
indexers. Events are immutable facts; emitting one never affects the outcome
of the operation that produced it.

Each event has two forms:

    to_dict()   JSON-friendly, keys as indexers expect them ("from", "to", ...)
    to_bytes()  sha256("event:<Name>")[:8] followed by the payload fields in
                declaration order (u32/i64 little-endian, 32-byte keys,
                strings as u32 length + UTF-8)

Usage
─────

    bus = EventBus()

    @bus.subscribe(ClaimEvent)
    def index_claim(event):
        print(f"ticket {event.nft_id} -> {event.recipient}")

    bus.publish(ClaimEvent(nft_id=3, recipient=alice, timestamp=1700000000))

Copyright (c) 2026 The Ticketmint Authors. All rights reserved.
"""

from __future__ import annotations

import hashlib
import json
import struct
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Dict, List, Optional, Set, Tuple, Type

from ticketmint.hardening import CryptoUtils
from ticketmint.keys import PUBKEY_LEN, Pubkey
from ticketmint.observability import Layer, get_logger

logger = get_logger("events", Layer.PROGRAM)

U32 = "u32"
I64 = "i64"
PUBKEY = "pubkey"
STRING = "string"


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for ticket events.

    Subclasses declare their payload as dataclass fields and list them, with
    their wire kinds, in ``LAYOUT``. ``RENAMED`` maps attribute names to the
    keys used in ``to_dict`` where they differ.
    """

    # Metadata fields (auto-populated, not part of the binary form)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = None

    LAYOUT: ClassVar[Tuple[Tuple[str, str], ...]] = ()
    RENAMED: ClassVar[Dict[str, str]] = {}

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    @classmethod
    def discriminator(cls) -> bytes:
        return CryptoUtils.discriminator("event", cls.__name__)

    def payload(self) -> Dict[str, Any]:
        """Payload fields keyed by their external names, keys as base58."""
        out: Dict[str, Any] = {}
        for name, kind in self.LAYOUT:
            value = getattr(self, name)
            out[self.RENAMED.get(name, name)] = str(value) if kind == PUBKEY else value
        return out

    def to_dict(self) -> Dict[str, Any]:
        data = self.payload()
        data["event_type"] = self.event_type
        data["event_id"] = self.event_id
        data["event_timestamp"] = self.event_timestamp
        if self.correlation_id:
            data["correlation_id"] = self.correlation_id
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str, sort_keys=True)

    def digest(self) -> str:
        """Digest of the binary form; metadata is excluded."""
        return hashlib.sha256(self.to_bytes()).hexdigest()

    def to_bytes(self) -> bytes:
        out = bytearray(self.discriminator())
        for name, kind in self.LAYOUT:
            value = getattr(self, name)
            if kind == U32:
                out += struct.pack("<I", value)
            elif kind == I64:
                out += struct.pack("<q", value)
            elif kind == PUBKEY:
                out += value.to_bytes()
            elif kind == STRING:
                raw = value.encode("utf-8")
                out += struct.pack("<I", len(raw)) + raw
        return bytes(out)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Event":
        data = bytes(data)
        if data[:8] != cls.discriminator():
            raise ValueError(f"not a {cls.__name__} payload")
        pos = 8
        values: Dict[str, Any] = {}
        try:
            for name, kind in cls.LAYOUT:
                if kind == U32:
                    (values[name],) = struct.unpack_from("<I", data, pos)
                    pos += 4
                elif kind == I64:
                    (values[name],) = struct.unpack_from("<q", data, pos)
                    pos += 8
                elif kind == PUBKEY:
                    values[name] = Pubkey(data[pos : pos + PUBKEY_LEN])
                    pos += PUBKEY_LEN
                elif kind == STRING:
                    (length,) = struct.unpack_from("<I", data, pos)
                    pos += 4
                    if pos + length > len(data):
                        raise ValueError(f"{name} exceeds payload")
                    values[name] = data[pos : pos + length].decode("utf-8")
                    pos += length
        except struct.error as ex:
            raise ValueError(f"truncated {cls.__name__} payload") from ex
        if pos != len(data):
            raise ValueError(f"{len(data) - pos} trailing bytes in {cls.__name__} payload")
        return cls(**values)


# ════════════════════════════════════════════════════════════════════════════
# TICKET EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class ClaimEvent(Event):
    """A ticket was claimed with a valid proof."""
    nft_id: int = 0
    recipient: Pubkey = field(default_factory=Pubkey.default)
    timestamp: int = 0

    LAYOUT: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("nft_id", U32),
        ("recipient", PUBKEY),
        ("timestamp", I64),
    )


@dataclass
class TransferEvent(Event):
    """The authority moved a ticket to a new owner."""
    nft_id: int = 0
    from_owner: Pubkey = field(default_factory=Pubkey.default)
    to: Pubkey = field(default_factory=Pubkey.default)
    operator: Pubkey = field(default_factory=Pubkey.default)

    LAYOUT: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("nft_id", U32),
        ("from_owner", PUBKEY),
        ("to", PUBKEY),
        ("operator", PUBKEY),
    )
    RENAMED: ClassVar[Dict[str, str]] = {"from_owner": "from"}


@dataclass
class BurnEvent(Event):
    nft_id: int = 0
    operator: Pubkey = field(default_factory=Pubkey.default)

    LAYOUT: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("nft_id", U32),
        ("operator", PUBKEY),
    )


@dataclass
class LockEvent(Event):
    operator: Pubkey = field(default_factory=Pubkey.default)
    timestamp: int = 0

    LAYOUT: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("operator", PUBKEY),
        ("timestamp", I64),
    )


@dataclass
class SignerUpdatedEvent(Event):
    old_signer: Pubkey = field(default_factory=Pubkey.default)
    new_signer: Pubkey = field(default_factory=Pubkey.default)
    operator: Pubkey = field(default_factory=Pubkey.default)

    LAYOUT: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("old_signer", PUBKEY),
        ("new_signer", PUBKEY),
        ("operator", PUBKEY),
    )


@dataclass
class BaseUriUpdatedEvent(Event):
    old_base_uri: str = ""
    new_base_uri: str = ""
    operator: Pubkey = field(default_factory=Pubkey.default)

    LAYOUT: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("old_base_uri", STRING),
        ("new_base_uri", STRING),
        ("operator", PUBKEY),
    )


EVENT_TYPES: Tuple[Type[Event], ...] = (
    ClaimEvent,
    TransferEvent,
    BurnEvent,
    LockEvent,
    SignerUpdatedEvent,
    BaseUriUpdatedEvent,
)
_BY_DISCRIMINATOR = {cls.discriminator(): cls for cls in EVENT_TYPES}


def decode_event(data: bytes) -> Event:
    """Decode any ticket event from its binary form."""
    cls = _BY_DISCRIMINATOR.get(bytes(data[:8]))
    if cls is None:
        raise ValueError(f"unknown event discriminator {bytes(data[:8]).hex()}")
    return cls.from_bytes(data)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════

EventHandler = Callable[[Event], None]


class EventHandlerError(Exception):
    """Error raised by an event handler."""

    def __init__(self, event: Event, handler: EventHandler, error: Exception):
        self.event = event
        self.handler = handler
        self.error = error
        super().__init__(f"Handler {getattr(handler, '__name__', handler)} failed on {event.event_type}: {error}")


@dataclass
class EventHandlerRegistration:
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0
    filter_func: Optional[Callable[[Event], bool]] = None


class EventBus:
    """
    In-memory event bus for committed ticket events.

    Handlers run synchronously in priority order (higher first). A failing
    handler is counted and reported through ``on_error``; it never affects
    other handlers or the transaction that produced the event.
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
        """Decorator subscribing a handler to event types (all events if none given)."""
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
            logger.warning(str(error), event_type=event.event_type)
            if self._on_error:
                self._on_error(error)

    @property
    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "published": self._published_count,
                "handled": self._handled_count,
                "errors": self._error_count,
                "handlers": len(self._handlers),
            }
