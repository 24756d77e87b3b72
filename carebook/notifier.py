"""
Change notifier — best-effort fan-out of appointment events to live
subscribers scoped by hospital, doctor and patient.

Delivery is at-most-once with no replay: there is no durable queue, a
subscriber that is disconnected (or whose buffer is full) simply misses
the event, and a failing subscriber never affects the others or the
booking that triggered the event.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from enum import Enum
from typing import Any, AsyncIterator, Iterable, Optional, Protocol

from carebook.config import settings

logger = logging.getLogger(__name__)


class Scope(str, Enum):
    HOSPITAL = "hospital"
    DOCTOR = "doctor"
    PATIENT = "patient"


class EventKind(str, Enum):
    BOOKED = "booked"
    UPDATED = "updated"
    UPDATED_OPTIMISTIC = "updated-optimistic"
    SLOT_PERIOD_UPDATED = "slot-period-updated"

    @property
    def wire_name(self) -> str:
        if self is EventKind.SLOT_PERIOD_UPDATED:
            return "slots:period-updated"
        return f"appointment-{self.value}"


class Subscriber(Protocol):
    def send(self, event: str, payload: dict) -> None: ...


def format_sse(event: str, payload: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(payload, default=str)}\n\n"


class PushChannel:
    """One long-lived SSE connection, buffered by a bounded asyncio queue."""

    def __init__(self, maxsize: int | None = None) -> None:
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize or settings.push_queue_size)

    def send(self, event: str, payload: dict) -> None:
        # QueueFull propagates so the notifier logs the drop
        self.queue.put_nowait(format_sse(event, payload))

    def ping(self) -> None:
        try:
            self.queue.put_nowait(": ping\n\n")
        except asyncio.QueueFull:
            pass

    async def stream(self) -> AsyncIterator[str]:
        while True:
            yield await self.queue.get()


# ---------------------------------------------------------------------------
# Subscriber registry (single process; no cross-instance fan-out)
# ---------------------------------------------------------------------------

_subscribers: dict[tuple[Scope, int], set[Subscriber]] = {}
_lock = threading.Lock()


def subscribe(scope: Scope, key: int, subscriber: Subscriber) -> None:
    with _lock:
        _subscribers.setdefault((scope, key), set()).add(subscriber)
    logger.info("Subscriber joined %s:%s", scope.value, key)


def unsubscribe(scope: Scope, key: int, subscriber: Subscriber) -> None:
    with _lock:
        subs = _subscribers.get((scope, key))
        if subs is None:
            return
        subs.discard(subscriber)
        if not subs:
            del _subscribers[(scope, key)]
    logger.info("Subscriber left %s:%s", scope.value, key)


def subscribers(scope: Scope, key: int) -> list[Subscriber]:
    with _lock:
        return list(_subscribers.get((scope, key), ()))


def all_subscribers() -> list[Subscriber]:
    with _lock:
        return [sub for subs in _subscribers.values() for sub in subs]


def clear() -> None:
    with _lock:
        _subscribers.clear()


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


def deliver(scope: Scope, key: Optional[int], kind: EventKind, payload: dict) -> int:
    """Send to every subscriber of one scope. Returns the number delivered."""
    if key is None:
        return 0
    delivered = 0
    for sub in subscribers(scope, key):
        try:
            sub.send(kind.wire_name, payload)
            delivered += 1
        except Exception as exc:
            logger.warning(
                "Dropped %s for %s:%s: %s", kind.wire_name, scope.value, key, exc
            )
    return delivered


def notify(
    kind: EventKind,
    payload: dict,
    *,
    doctor_id: int,
    patient_id: Optional[int],
    hospital_ids: Iterable[int] = (),
) -> int:
    """Fan an event out to hospital(s), doctor and patient scopes."""
    delivered = 0
    for hospital_id in hospital_ids:
        delivered += deliver(Scope.HOSPITAL, hospital_id, kind, payload)
    delivered += deliver(Scope.DOCTOR, doctor_id, kind, payload)
    delivered += deliver(Scope.PATIENT, patient_id, kind, payload)
    logger.debug("%s delivered to %d subscriber(s)", kind.wire_name, delivered)
    return delivered


def heartbeat() -> None:
    """Keep idle push channels open."""
    for sub in all_subscribers():
        ping = getattr(sub, "ping", None)
        if ping is not None:
            ping()
