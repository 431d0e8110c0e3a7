"""
Connect/disconnect events.

Every connect and disconnect handled by the coordinator is recorded as an
Event. Events carry a snapshot of the host at the time they happened and
are never changed afterwards. The EventLog keeps the most recent ones.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional, Tuple, Union

from .host import Host, utcnow

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000


@dataclass(frozen=True)
class Connect:
    host: Host
    kind = "connect"


@dataclass(frozen=True)
class Disconnect:
    host: Host
    kind = "disconnect"


Payload = Union[Connect, Disconnect]


@dataclass(frozen=True)
class Event:
    """Something that happened to a host."""
    id: str
    created_at: datetime
    payload: Payload

    @property
    def host(self) -> Host:
        return self.payload.host

    def to_dict(self) -> dict:
        if isinstance(self.payload, Connect):
            kind = Connect.kind
        elif isinstance(self.payload, Disconnect):
            kind = Disconnect.kind
        else:
            raise TypeError(f"unknown event payload {type(self.payload).__name__}")
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "type": kind,
            "host": self.payload.host.to_dict(include_private=False),
        }


class EventIdFactory:
    """
    Hands out event ids that sort in creation order.

    An id is the creation time in microseconds followed by a process-wide
    sequence number, both fixed width hex, so plain string comparison orders
    ids even when the clock does not move between two events.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sequence = 0
        self._last_micros = 0

    def next(self, now: Optional[datetime] = None) -> Tuple[str, datetime]:
        now = now or utcnow()
        micros = int(now.timestamp() * 1_000_000)
        with self._lock:
            # clock going backwards must not reorder ids
            micros = max(micros, self._last_micros)
            self._last_micros = micros
            self._sequence += 1
            sequence = self._sequence
        return f"{micros:014x}-{sequence:08x}", now


_ids = EventIdFactory()


def new_event(payload: Payload, now: Optional[datetime] = None) -> Event:
    event_id, created_at = _ids.next(now)
    return Event(id=event_id, created_at=created_at, payload=payload)


def connect_event(host: Host, now: Optional[datetime] = None) -> Event:
    return new_event(Connect(host.public()), now)


def disconnect_event(host: Host, now: Optional[datetime] = None) -> Event:
    return new_event(Disconnect(host.public()), now)


class EventLog:
    """
    Bounded log of the most recent events, keyed by event id.

    Once full, recording an event silently drops the oldest one. Entries are
    never promoted on read, so insertion order is recency order.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._events: "OrderedDict[str, Event]" = OrderedDict()

    def record(self, event: Event) -> None:
        self._events[event.id] = event
        while len(self._events) > self.capacity:
            evicted, _ = self._events.popitem(last=False)
            logger.debug(f"Evicted event {evicted}")

    def get(self, event_id: str) -> Optional[Event]:
        return self._events.get(event_id)

    def __contains__(self, event_id: str) -> bool:
        return event_id in self._events

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return reversed(list(self._events.values()))

    def list(self, limit: Optional[int] = None) -> List[Event]:
        """Events, most recent first."""
        events = list(self)
        return events if limit is None else events[:limit]
