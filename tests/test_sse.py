"""Tests for the SSE module."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from greenhouse.lib.hub import BroadcastHub, Envelope, EnvelopeType
from greenhouse.server.sse import KEEPALIVE, _event_generator, sse_sensors


@pytest.fixture
def mock_request():
    """Create a mock Request that stays connected."""
    request = MagicMock()
    request.is_disconnected = AsyncMock(return_value=False)
    return request


@pytest.fixture
def hub():
    return BroadcastHub(queue_size=10)


def parse_event(chunk):
    assert chunk.startswith("data: ")
    assert chunk.endswith("\n\n")
    return json.loads(chunk[len("data: ") :])


class TestEventGenerator:
    @pytest.mark.asyncio
    async def test_starts_with_init_envelope(self, mock_request, hub, make_reading):
        hub.publish(make_reading(temperature=22.5))
        gen = _event_generator(mock_request, hub, keepalive_sec=1)

        event = parse_event(await anext(gen))
        await gen.aclose()

        assert event["type"] == "init"
        assert event["payload"]["temperature"] == 22.5

    @pytest.mark.asyncio
    async def test_init_before_first_reading_is_null(self, mock_request, hub):
        gen = _event_generator(mock_request, hub, keepalive_sec=1)

        event = parse_event(await anext(gen))
        await gen.aclose()

        assert event == {"type": "init", "payload": None}

    @pytest.mark.asyncio
    async def test_streams_published_envelopes(self, mock_request, hub):
        gen = _event_generator(mock_request, hub, keepalive_sec=1)
        await anext(gen)

        hub.publish_envelope(Envelope(EnvelopeType.CONTROL, {"paused": True}))
        event = parse_event(await anext(gen))
        await gen.aclose()

        assert event == {"type": "control", "payload": {"paused": True}}

    @pytest.mark.asyncio
    async def test_keepalive_when_quiet(self, mock_request, hub):
        gen = _event_generator(mock_request, hub, keepalive_sec=0.01)

        await anext(gen)
        assert await anext(gen) == KEEPALIVE
        await gen.aclose()

    @pytest.mark.asyncio
    async def test_stops_when_client_disconnects(self, mock_request, hub):
        mock_request.is_disconnected = AsyncMock(return_value=True)
        gen = _event_generator(mock_request, hub, keepalive_sec=0.01)

        chunks = [chunk async for chunk in gen]

        assert len(chunks) == 1
        assert parse_event(chunks[0])["type"] == "init"
        assert hub.listener_count == 0

    @pytest.mark.asyncio
    async def test_stops_when_hub_closes(self, mock_request, hub, make_reading):
        hub.publish(make_reading())
        gen = _event_generator(mock_request, hub, keepalive_sec=1)
        await anext(gen)

        hub.close()

        with pytest.raises(StopAsyncIteration):
            await anext(gen)

    @pytest.mark.asyncio
    async def test_unsubscribes_on_close(self, mock_request, hub, make_reading):
        hub.publish(make_reading())
        gen = _event_generator(mock_request, hub, keepalive_sec=1)
        await anext(gen)
        assert hub.listener_count == 1

        await gen.aclose()

        assert hub.listener_count == 0


class TestSSEEndpoint:
    @pytest.mark.asyncio
    async def test_returns_streaming_response(self, mock_request):
        pipeline = MagicMock()
        pipeline.hub = BroadcastHub()
        pipeline.settings.stream.heartbeat_sec = 15
        mock_request.app.state.pipeline = pipeline

        response = await sse_sensors(mock_request)

        assert response.media_type == "text/event-stream"
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"
