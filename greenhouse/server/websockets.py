"""WebSocket stream of telemetry, control and alert envelopes.

Each connection owns a hub subscription. It receives an ``init`` envelope
once, then every envelope published on the hub, plus heartbeat pings.
"""
import asyncio
from contextlib import suppress

from starlette.websockets import WebSocket, WebSocketDisconnect

from greenhouse.lib.hub import Subscription
from greenhouse.logging import get_logger
from greenhouse.server.validators import get_pipeline

_logger = get_logger("server.websockets")

_MAX_LOGGED_MESSAGE = 200


async def _send_heartbeat(
    websocket: WebSocket, client_id: int, interval_sec: float
) -> None:
    """Send periodic heartbeat pings to detect dead connections."""
    while True:
        await asyncio.sleep(interval_sec)
        try:
            await websocket.send_json({"type": "ping"})
        except WebSocketDisconnect:
            raise
        except Exception:
            _logger.debug("Heartbeat failed for client %s", client_id)
            raise WebSocketDisconnect() from None


async def _forward_envelopes(
    websocket: WebSocket, subscription: Subscription
) -> None:
    """Push hub envelopes to the client until the subscription closes."""
    async for envelope in subscription:
        await websocket.send_json(envelope.to_dict())


async def _receive_messages(websocket: WebSocket, client_id: int) -> None:
    """Drain client messages; returns when the client disconnects."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
        text = message.get("text") or ""
        if text:
            _logger.debug(
                "Message from client %s: %s",
                client_id,
                text[:_MAX_LOGGED_MESSAGE],
            )


async def ws_stream(websocket: WebSocket) -> None:
    """Stream real-time envelopes to one client."""
    pipeline = get_pipeline(websocket)
    await websocket.accept()
    client_id = id(websocket)
    subscription = pipeline.hub.subscribe()
    _logger.info(
        "Client %s connected (total: %d)",
        client_id,
        pipeline.hub.listener_count,
    )

    tasks = [
        asyncio.create_task(_forward_envelopes(websocket, subscription)),
        asyncio.create_task(_receive_messages(websocket, client_id)),
        asyncio.create_task(
            _send_heartbeat(
                websocket, client_id, pipeline.settings.stream.heartbeat_sec
            )
        ),
    ]

    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if task.exception() is not None:
                _logger.debug(
                    "Stream to client %s ended: %r", client_id, task.exception()
                )
    except asyncio.CancelledError:
        _logger.info("Connection to client %s cancelled (shutdown)", client_id)
        raise
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError, Exception):
                await task
        pipeline.hub.unsubscribe(subscription)
        with suppress(Exception):
            await websocket.close()
        _logger.info("Client %s disconnected", client_id)
