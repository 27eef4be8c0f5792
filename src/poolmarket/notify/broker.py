"""Notification fan-out: best-effort broadcast and per-user delivery to stream subscribers."""

from __future__ import annotations

import asyncio
import json
from threading import Lock
from typing import Any, Protocol

import structlog
from pydantic import BaseModel

log = structlog.get_logger(__name__)

# Message kinds pushed to subscribers
ODDS_UPDATED = "odds_updated"
EVENT_CREATED = "event_created"
EVENT_RESOLVED = "event_resolved"
USER_RESOLVED = "user_resolved"
ACTIVITY_NEW = "activity_new"


class NotificationSink(Protocol):
    """What the engine needs from a notifier. Delivery is fire-and-forget."""

    def broadcast(self, kind: str, payload: Any) -> None: ...
    def send_to(self, user_id: int, kind: str, payload: Any) -> None: ...


class NullSink:
    """Sink that discards everything (CLI use, no subscribers)."""

    def broadcast(self, kind: str, payload: Any) -> None:
        pass

    def send_to(self, user_id: int, kind: str, payload: Any) -> None:
        pass


def _jsonable(payload: Any) -> Any:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json")
    if isinstance(payload, dict):
        return {k: _jsonable(v) for k, v in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [_jsonable(v) for v in payload]
    return payload


def encode_message(kind: str, payload: Any) -> str:
    """Wire form of one notification: {"type": kind, "data": payload}."""
    return json.dumps({"type": kind, "data": _jsonable(payload)}, default=str)


class Subscription:
    """One connected stream client.

    Messages are handed to the client's event loop from whichever thread
    publishes them and land in a bounded asyncio queue. When the queue is
    full the message is dropped for this client only.
    """

    def __init__(self, user_id: int | None, maxsize: int, loop: asyncio.AbstractEventLoop) -> None:
        self.user_id = user_id  # None = anonymous
        self._loop = loop
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, message: str) -> None:
        """Schedule delivery on the subscriber's loop. Never blocks."""
        try:
            self._loop.call_soon_threadsafe(self._put, message)
        except RuntimeError:
            # Loop already closed: the client is gone
            self.dropped += 1

    def _put(self, message: str) -> None:
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            log.debug("message_dropped", user_id=self.user_id, dropped=self.dropped)

    async def next(self, timeout: float | None = None) -> str | None:
        """Next message, or None if nothing arrived within timeout."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def pending(self) -> int:
        return self._queue.qsize()


class Broker:
    """In-process subscriber registry. Never blocks on a slow consumer."""

    def __init__(self, queue_size: int = 64) -> None:
        self.queue_size = queue_size
        self._lock = Lock()
        self._subscribers: set[Subscription] = set()

    def subscribe(self, user_id: int | None = None, loop: asyncio.AbstractEventLoop | None = None) -> Subscription:
        """Register a client. Must run on the loop that will consume, unless one is given."""
        sub = Subscription(user_id, self.queue_size, loop or asyncio.get_running_loop())
        with self._lock:
            self._subscribers.add(sub)
        log.debug("subscriber_added", user_id=user_id, total=len(self._subscribers))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(sub)
        if sub.dropped:
            log.info("subscriber_removed", user_id=sub.user_id, dropped=sub.dropped)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def _targets(self, user_id: int | None = None) -> list[Subscription]:
        with self._lock:
            subs = list(self._subscribers)
        if user_id is None:
            return subs
        return [s for s in subs if s.user_id == user_id]

    def broadcast(self, kind: str, payload: Any) -> None:
        message = encode_message(kind, payload)
        for sub in self._targets():
            sub.offer(message)

    def send_to(self, user_id: int, kind: str, payload: Any) -> None:
        message = encode_message(kind, payload)
        for sub in self._targets(user_id):
            sub.offer(message)
