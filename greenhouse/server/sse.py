"""Server-Sent Events stream of hub envelopes.

Same envelopes as the WebSocket stream, one ``data:`` line each, with a
comment line as keepalive when the hub is quiet.
"""

import asyncio
import json
from collections.abc import AsyncIterator

from starlette.requests import Request
from starlette.responses import StreamingResponse

from greenhouse.lib.hub import BroadcastHub
from greenhouse.logging import get_logger
from greenhouse.server.validators import get_pipeline

_logger = get_logger("server.sse")

KEEPALIVE = ": ping\n\n"


def _sse_response(generator: AsyncIterator[str]) -> StreamingResponse:
    """Create an SSE streaming response."""
    return StreamingResponse(
        generator,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


async def _event_generator(
    request: Request, hub: BroadcastHub, keepalive_sec: float
) -> AsyncIterator[str]:
    """Generate SSE events for one client until it disconnects."""
    subscription = hub.subscribe()
    _logger.info("SSE client connected (listeners: %d)", hub.listener_count)
    try:
        while True:
            try:
                envelope = await asyncio.wait_for(
                    subscription.get(), keepalive_sec
                )
            except TimeoutError:
                if await request.is_disconnected():
                    break
                yield KEEPALIVE
                continue
            if envelope is None:
                break
            yield f"data: {json.dumps(envelope.to_dict())}\n\n"
            if await request.is_disconnected():
                break
    finally:
        hub.unsubscribe(subscription)
        _logger.info("SSE client disconnected")


async def sse_sensors(request: Request) -> StreamingResponse:
    """Stream readings, control changes and alerts via SSE."""
    pipeline = get_pipeline(request)
    return _sse_response(
        _event_generator(
            request, pipeline.hub, pipeline.settings.stream.heartbeat_sec
        )
    )
