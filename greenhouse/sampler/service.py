"""Sampler and staleness watchdog loops."""

import time
from collections.abc import Callable
from typing import override

from greenhouse.lib.alerts import AlertEvaluator, AlertEvent
from greenhouse.lib.hub import BroadcastHub
from greenhouse.lib.polling import PollingService
from greenhouse.lib.reading import Reading, RollingHistory, parse_line
from greenhouse.sampler.sources import TelemetrySource

type AlertSink = Callable[[AlertEvent], None]


class SamplerService(PollingService[Reading]):
    """Samples the telemetry source once per tick.

    A reading is retained in history and broadcast before it is evaluated,
    so listeners never wait on alert handling.
    """

    def __init__(
        self,
        source: TelemetrySource,
        *,
        hub: BroadcastHub,
        history: RollingHistory,
        evaluator: AlertEvaluator,
        on_alert: AlertSink,
        device_id: str,
        frequency_sec: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(name="sampler", frequency_sec=frequency_sec)
        self._source = source
        self._hub = hub
        self._history = history
        self._evaluator = evaluator
        self._on_alert = on_alert
        self._device_id = device_id
        self._clock = clock

    @property
    def source(self) -> TelemetrySource:
        return self._source

    @override
    async def cleanup(self) -> None:
        self._source.close()

    @override
    async def poll(self) -> Reading | None:
        """Read and validate one telemetry line."""
        line = await self._source.readline()
        if not line:
            self._logger.debug("Read timeout, no data received")
            return None
        return parse_line(line, self._device_id, monotonic=self._clock())

    async def ingest(self, reading: Reading) -> None:
        """Handle a reading pushed by a device, outside the polling loop."""
        await self.publish(reading)
        await self.audit(reading)

    @override
    async def publish(self, reading: Reading) -> None:
        self._history.append(reading)
        count = self._hub.publish(reading)
        self._logger.debug(
            "T=%.2f H=%.2f W=%.2f B=%.3f -> %d listener(s)",
            reading.temperature,
            reading.humidity,
            reading.water_level,
            reading.battery,
            count,
        )

    @override
    async def audit(self, reading: Reading) -> None:
        for event in self._evaluator.evaluate(reading):
            self._on_alert(event)


class StalenessWatchdog(PollingService[list[AlertEvent]]):
    """Periodically checks that readings keep arriving."""

    def __init__(
        self,
        evaluator: AlertEvaluator,
        *,
        on_alert: AlertSink,
        frequency_sec: float,
    ) -> None:
        super().__init__(name="watchdog", frequency_sec=frequency_sec)
        self._evaluator = evaluator
        self._on_alert = on_alert

    @override
    async def poll(self) -> list[AlertEvent] | None:
        return self._evaluator.check_staleness() or None

    @override
    async def publish(self, events: list[AlertEvent]) -> None:
        for event in events:
            self._on_alert(event)
