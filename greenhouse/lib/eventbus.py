"""Redis bridge mirroring hub envelopes for other processes.

Every ``sensors``, ``control`` and ``alert`` envelope published on the
in-process hub is re-published as JSON on the Redis channel
``{prefix}.{type}``, e.g. ``greenhouse.sensors``.
"""

import asyncio
import json
from contextlib import suppress

import redis.asyncio as aioredis

from greenhouse.lib.config import EventBusSettings, get_settings
from greenhouse.lib.hub import BroadcastHub, Envelope, EnvelopeType, Subscription
from greenhouse.logging import get_logger

logger = get_logger("lib.eventbus")

_STOP_TIMEOUT_SEC = 2.0


class EventBridge:
    """Forwards hub envelopes to Redis pub/sub.

    Publishing failures are logged and the envelope is skipped; the bridge
    never slows down or breaks the hub.
    """

    def __init__(
        self,
        hub: BroadcastHub,
        settings: EventBusSettings | None = None,
        client: aioredis.Redis | None = None,
    ) -> None:
        self._hub = hub
        self._settings = settings or get_settings().eventbus
        self._client = client
        self._subscription: Subscription | None = None
        self._task: asyncio.Task[None] | None = None
        self.published = 0

    def channel_for(self, envelope: Envelope) -> str:
        return f"{self._settings.channel_prefix}.{envelope.type}"

    async def start(self) -> None:
        """Connect to Redis and start forwarding."""
        if self._client is None:
            self._client = aioredis.from_url(self._settings.redis_url)
        self._subscription = self._hub.subscribe()
        self._task = asyncio.create_task(self._forward(), name="event-bridge")
        logger.info("Event bridge publishing to %s", self._settings.redis_url)

    async def _publish(self, envelope: Envelope) -> None:
        if self._client is None:
            return
        message = json.dumps(envelope.to_dict())
        try:
            await self._client.publish(self.channel_for(envelope), message)
        except (aioredis.RedisError, OSError) as e:
            logger.warning("Failed to publish %s envelope: %s", envelope.type, e)
            return
        self.published += 1
        logger.debug("Published to %s", self.channel_for(envelope))

    async def _forward(self) -> None:
        if self._subscription is None:
            return
        async for envelope in self._subscription:
            if envelope.type == EnvelopeType.INIT:
                continue
            await self._publish(envelope)

    async def stop(self) -> None:
        """Stop forwarding and close the Redis connection."""
        if self._subscription is not None:
            self._hub.unsubscribe(self._subscription)
            self._subscription = None
        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, _STOP_TIMEOUT_SEC)
            except TimeoutError:
                logger.warning("Event bridge did not drain in time")
            self._task = None
        if self._client is not None:
            with suppress(aioredis.RedisError, OSError):
                await self._client.aclose()
            self._client = None
        logger.info("Event bridge stopped")
