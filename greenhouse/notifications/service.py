"""Notification service that dispatches alert events off the hot path.

Alert events are submitted to a bounded queue and delivered by a single
worker task through the configured notifier backend. Submitting never
blocks: when the queue is full the event is dropped and logged.
"""

import asyncio
from contextlib import suppress
from dataclasses import asdict, dataclass

from greenhouse.lib.alerts import AlertEvent
from greenhouse.lib.config import NotificationSettings, get_settings
from greenhouse.lib.notifications import (
    AbstractNotifier,
    DeliveryOutcome,
    get_notifier,
)
from greenhouse.logging import get_logger

logger = get_logger("notifications.service")


@dataclass(slots=True)
class DispatchStats:
    submitted: int = 0
    delivered: int = 0
    failed: int = 0
    dropped: int = 0


class NotificationService:
    """Bounded queue plus worker task in front of a notifier backend."""

    def __init__(
        self,
        notifier: AbstractNotifier | None = None,
        settings: NotificationSettings | None = None,
    ) -> None:
        cfg = settings or get_settings().notifications
        self._notifier = notifier or get_notifier(cfg)
        self._queue: asyncio.Queue[AlertEvent] = asyncio.Queue(
            maxsize=cfg.queue_size
        )
        self._grace_sec = cfg.shutdown_grace_sec
        self._worker: asyncio.Task[None] | None = None
        self._accepting = False
        self._stats = DispatchStats()

    @property
    def notifier(self) -> AbstractNotifier:
        return self._notifier

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def stats(self) -> dict[str, int]:
        return asdict(self._stats)

    def start(self) -> None:
        """Start the delivery worker on the running event loop."""
        if self._worker is not None:
            return
        self._accepting = True
        self._worker = asyncio.create_task(
            self._run(), name="notification-worker"
        )
        logger.info(
            "Notification service started (backend: %s)", self._notifier.name
        )

    def submit(self, event: AlertEvent) -> bool:
        """Queue an alert for delivery without waiting.

        Returns:
            False if the service is not accepting events or the queue is full.
        """
        if not self._accepting:
            logger.warning("Notification service stopped, dropping %s", event.key)
            self._stats.dropped += 1
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error("Notification queue full, dropping %s", event.key)
            self._stats.dropped += 1
            return False
        self._stats.submitted += 1
        return True

    async def _deliver(self, event: AlertEvent) -> DeliveryOutcome:
        try:
            return await self._notifier.deliver(event)
        except Exception as e:
            logger.exception("Unexpected error delivering %s", event.key)
            return DeliveryOutcome.failed(str(e))

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                outcome = await self._deliver(event)
                if outcome.delivered:
                    self._stats.delivered += 1
                else:
                    self._stats.failed += 1
                    logger.error(
                        "Giving up on %s notification after %d attempt(s): %s",
                        event.key,
                        outcome.attempts,
                        outcome.reason,
                    )
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def stop(self, grace_sec: float | None = None) -> None:
        """Stop accepting events and drain the queue for a bounded time.

        Deliveries still pending once the grace period ends are abandoned.
        """
        grace = self._grace_sec if grace_sec is None else grace_sec
        self._accepting = False
        if self._worker is None:
            return

        try:
            await asyncio.wait_for(self._queue.join(), timeout=grace)
        except TimeoutError:
            logger.warning(
                "Grace period of %.1fs elapsed, abandoning %d queued notification(s)",
                grace,
                self._queue.qsize(),
            )

        self._worker.cancel()
        with suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None
        logger.info("Notification service stopped")
