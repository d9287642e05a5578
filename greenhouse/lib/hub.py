"""In-process broadcast hub for real-time telemetry listeners.

Each listener gets its own bounded queue. Publishing never awaits a
listener: when a queue is full the oldest envelope is dropped, so one
stalled viewer cannot hold back the sampler or the other viewers.
"""

import asyncio
import threading
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Self

from greenhouse.lib.reading import Reading
from greenhouse.logging import get_logger

logger = get_logger("lib.hub")


class EnvelopeType(StrEnum):
    """Message kinds pushed to listeners."""

    INIT = "init"
    SENSORS = "sensors"
    CONTROL = "control"
    ALERT = "alert"


@dataclass(frozen=True, slots=True)
class Envelope:
    """A typed message for the real-time stream."""

    type: EnvelopeType
    payload: Any

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "payload": self.payload}

    @classmethod
    def for_reading(
        cls, reading: Reading, type: EnvelopeType = EnvelopeType.SENSORS
    ) -> Self:
        return cls(type=type, payload=reading.to_dict())


class Subscription:
    """A listener handle with a bounded, drop-oldest queue."""

    def __init__(self, maxsize: int = 100) -> None:
        self._queue: asyncio.Queue[Envelope | None] = asyncio.Queue(
            maxsize=maxsize
        )
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def offer(self, envelope: Envelope) -> bool:
        """Queue an envelope without blocking.

        Returns:
            False if the subscription is closed.
        """
        if self._closed:
            return False
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(envelope)
        return True

    def close(self) -> None:
        """Close the subscription and wake any pending reader."""
        if self._closed:
            return
        self._closed = True
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def get(self) -> Envelope | None:
        """Wait for the next envelope, or None once closed."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def get_nowait(self) -> Envelope | None:
        """Return the next queued envelope, or None if nothing is queued."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def drain(self) -> list[Envelope]:
        """Take every envelope currently queued, without waiting."""
        envelopes = []
        while (envelope := self.get_nowait()) is not None:
            envelopes.append(envelope)
        return envelopes

    async def __aiter__(self) -> AsyncIterator[Envelope]:
        while True:
            envelope = await self.get()
            if envelope is None:
                return
            yield envelope


class BroadcastHub:
    """Fans out readings and other envelopes to every open subscription.

    Thread-safe: the subscription set is guarded by a lock, so connection
    handlers may subscribe and unsubscribe concurrently with publishing.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._lock = threading.Lock()
        self._subscriptions: set[Subscription] = set()
        self._latest: Reading | None = None
        self._closed = False

    @property
    def latest(self) -> Reading | None:
        with self._lock:
            return self._latest

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(self) -> Subscription:
        """Register a new listener.

        The listener immediately receives an ``init`` envelope with the last
        known reading, or a null payload before the first reading.
        """
        subscription = Subscription(self._queue_size)
        with self._lock:
            if self._closed:
                subscription.close()
                return subscription
            self._subscriptions.add(subscription)
            latest = self._latest
            total = len(self._subscriptions)

        if latest is None:
            subscription.offer(Envelope(EnvelopeType.INIT, None))
        else:
            subscription.offer(Envelope.for_reading(latest, EnvelopeType.INIT))
        logger.info("Listener %s subscribed (total: %d)", id(subscription), total)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a listener and close its queue."""
        with self._lock:
            self._subscriptions.discard(subscription)
            remaining = len(self._subscriptions)
        subscription.close()
        logger.info(
            "Listener %s unsubscribed (remaining: %d)",
            id(subscription),
            remaining,
        )

    def publish(self, reading: Reading) -> int:
        """Record a reading as the latest and push it to every listener."""
        with self._lock:
            self._latest = reading
        return self.publish_envelope(Envelope.for_reading(reading))

    def publish_envelope(self, envelope: Envelope) -> int:
        """Push an envelope to every open listener.

        Returns:
            The number of listeners the envelope was queued for.
        """
        with self._lock:
            targets = list(self._subscriptions)

        delivered = 0
        closed: list[Subscription] = []
        for subscription in targets:
            if subscription.offer(envelope):
                delivered += 1
            else:
                closed.append(subscription)

        if closed:
            with self._lock:
                self._subscriptions.difference_update(closed)
            logger.debug("Dropped %d closed listener(s)", len(closed))

        return delivered

    def close(self) -> None:
        """Close every subscription and refuse new ones."""
        with self._lock:
            self._closed = True
            subscriptions = list(self._subscriptions)
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.close()
        logger.info("Broadcast hub closed (%d listeners)", len(subscriptions))
