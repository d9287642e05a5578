"""Tests for pipeline wiring, control flow and shutdown."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from greenhouse.lib.config import AlertKind, Settings
from greenhouse.lib.control import EmergencyStop, LoggingGateway, SetActuators
from greenhouse.lib.hub import EnvelopeType
from greenhouse.lib.notifications import DeliveryOutcome
from greenhouse.lib.reading import TelemetryPayload
from greenhouse.pipeline import Pipeline
from greenhouse.sampler.sources import SimulatedSource


@pytest.fixture
def notifier():
    mock = MagicMock()
    mock.name = "fake"
    mock.deliver = AsyncMock(return_value=DeliveryOutcome.ok())
    return mock


@pytest.fixture
def pipeline(notifier, clock):
    settings = Settings(_env_file=None, interval_ms=10, simulation_seed=7)
    return Pipeline(settings, notifier=notifier, clock=clock)


class TestPipeline:
    def test_wiring(self, pipeline):
        assert isinstance(pipeline.source, SimulatedSource)
        assert isinstance(pipeline.gateway, LoggingGateway)
        assert pipeline.bridge is None
        assert pipeline.history.capacity == 300
        assert not pipeline.running

    @pytest.mark.asyncio
    async def test_start_samples_and_stop_closes_listeners(self, pipeline):
        await pipeline.start()
        sub = pipeline.hub.subscribe()
        await asyncio.sleep(0.05)
        await pipeline.stop()

        assert len(pipeline.history) >= 2
        types = [envelope.type for envelope in sub.drain()]
        assert EnvelopeType.SENSORS in types
        assert sub.closed
        assert not pipeline.running

    @pytest.mark.asyncio
    async def test_alert_is_broadcast_and_notified(self, pipeline, notifier, make_reading):
        pipeline.notifications.start()
        sub = pipeline.hub.subscribe()
        sub.drain()

        for event in pipeline.evaluator.evaluate(make_reading(water_level=5), now=0):
            pipeline.dispatch_alert(event)
        await pipeline.notifications.join()

        envelope = sub.get_nowait()
        assert envelope.type == EnvelopeType.ALERT
        assert envelope.payload["kind"] == AlertKind.WATER_LOW
        notifier.deliver.assert_awaited_once()
        await pipeline.notifications.stop()

    @pytest.mark.asyncio
    async def test_apply_command(self, pipeline, notifier):
        pipeline.notifications.start()
        sub = pipeline.hub.subscribe()
        sub.drain()

        outcome = await pipeline.apply_command(EmergencyStop())
        await pipeline.notifications.join()

        assert outcome.sent
        assert pipeline.gateway.actuators == EmergencyStop().actuators
        control, alert = sub.get_nowait(), sub.get_nowait()
        assert control.type == EnvelopeType.CONTROL
        assert control.payload["command"] == "emergency_stop"
        assert alert.type == EnvelopeType.ALERT
        assert alert.payload["type"] == "emergency_stop"
        assert alert.payload["level"] == "critical"
        event = notifier.deliver.await_args.args[0]
        assert event.key == "emergency_stop"
        await pipeline.notifications.stop()

    @pytest.mark.asyncio
    async def test_repeated_command_report_is_rate_limited(self, pipeline):
        pipeline.notifications.start()

        first = await pipeline.apply_command(SetActuators(fans=10))
        second = await pipeline.apply_command(SetActuators(fans=20))

        assert first.sent
        assert second.skipped
        assert pipeline.gateway.actuators.fans == 20
        await pipeline.notifications.stop()

    @pytest.mark.asyncio
    async def test_report_alert_skipped_in_cooldown(self, pipeline):
        pipeline.notifications.start()

        assert pipeline.report_alert("door_open", "info", "Door open").sent
        outcome = pipeline.report_alert("door_open", "info", "Door open")

        assert outcome.reason == "cooldown"
        assert pipeline.notifications.stats["submitted"] == 1
        await pipeline.notifications.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, pipeline):
        await pipeline.start()
        await pipeline.stop()
        await pipeline.stop()
        assert not pipeline.running

    @pytest.mark.asyncio
    async def test_staleness_follows_injected_clock(self, pipeline, clock, notifier):
        pipeline.notifications.start()

        reading = await pipeline.sampler.tick()
        assert reading.monotonic == clock.now
        assert await pipeline.watchdog.tick() is None

        clock.advance(pipeline.settings.alerts.stale_after_sec + 1)
        events = await pipeline.watchdog.tick()
        await pipeline.notifications.join()

        assert [e.kind for e in events] == [AlertKind.COMMUNICATION_STALE]
        event = notifier.deliver.await_args.args[0]
        assert event.kind == AlertKind.COMMUNICATION_STALE
        await pipeline.notifications.stop()


class TestIngest:
    @pytest.mark.asyncio
    async def test_pushed_reading_is_published_then_evaluated(self, pipeline, clock):
        pipeline.notifications.start()
        sub = pipeline.hub.subscribe()
        sub.drain()
        clock.advance(3)
        payload = TelemetryPayload.model_validate(
            {
                "deviceId": "ESP32-CASA-001",
                "temperature": 40,
                "humidity": 60,
                "waterLevel": 50,
            }
        )

        reading = await pipeline.ingest(payload)

        assert reading.device_id == "ESP32-CASA-001"
        assert reading.monotonic == 3
        assert pipeline.history.latest() is reading
        sensors, alert = sub.drain()
        assert sensors.type == EnvelopeType.SENSORS
        assert alert.type == EnvelopeType.ALERT
        assert alert.payload["kind"] == AlertKind.TEMPERATURE_HIGH
        assert pipeline.evaluator.last_seen == 3
        await pipeline.notifications.stop()

    @pytest.mark.asyncio
    async def test_send_test_notification(self, pipeline, notifier):
        outcome = await pipeline.send_test_notification("Hi", "Body")

        assert outcome.delivered
        event = notifier.deliver.await_args.args[0]
        assert event.title == "Hi"
        assert event.message == "Body"
        assert pipeline.notifications.stats["submitted"] == 0
