"""Wiring of the telemetry pipeline.

Sampler → {history, hub, evaluator}; evaluator → {notification queue, hub}.
Control commands flow the other way: gateway first, then a ``control``
envelope and a reported alert for the state change.
"""

import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from greenhouse.lib.alerts import AlertEvaluator, AlertEvent, ReportOutcome
from greenhouse.lib.config import AlertKind, Settings, Severity, get_settings
from greenhouse.lib.control import (
    Command,
    ControlGateway,
    LoggingGateway,
    command_to_dict,
    report_for_command,
)
from greenhouse.lib.eventbus import EventBridge
from greenhouse.lib.hub import BroadcastHub, Envelope, EnvelopeType
from greenhouse.lib.notifications import AbstractNotifier, DeliveryOutcome
from greenhouse.lib.reading import Reading, RollingHistory, TelemetryPayload
from greenhouse.logging import get_logger
from greenhouse.notifications.service import NotificationService
from greenhouse.sampler.service import SamplerService, StalenessWatchdog
from greenhouse.sampler.sources import TelemetrySource, create_source

logger = get_logger("pipeline")


class Pipeline:
    """Owns every long-lived component of the relay."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        source: TelemetrySource | None = None,
        notifier: AbstractNotifier | None = None,
        gateway: ControlGateway | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or get_settings()
        cfg = self.settings

        self.history = RollingHistory(cfg.stream.history_size)
        self.hub = BroadcastHub(cfg.stream.listener_queue_size)
        self.evaluator = AlertEvaluator(cfg.alerts, clock=clock)
        self.notifications = NotificationService(notifier, cfg.notifications)
        self.gateway: ControlGateway = gateway or LoggingGateway()
        self.source = source or create_source(cfg.sampler, clock=clock)
        self.bridge = (
            EventBridge(self.hub, cfg.eventbus) if cfg.eventbus.enabled else None
        )

        self.sampler = SamplerService(
            self.source,
            hub=self.hub,
            history=self.history,
            evaluator=self.evaluator,
            on_alert=self.dispatch_alert,
            device_id=cfg.sampler.device_id,
            frequency_sec=cfg.sampler.interval_sec,
            clock=clock,
        )
        self.watchdog = StalenessWatchdog(
            self.evaluator,
            on_alert=self.dispatch_alert,
            frequency_sec=cfg.alerts.stale_check_sec,
        )
        self._clock = clock
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def dispatch_alert(self, event: AlertEvent) -> None:
        """Broadcast an alert and queue its notification."""
        self.hub.publish_envelope(Envelope(EnvelopeType.ALERT, event.to_dict()))
        self.notifications.submit(event)

    def report_alert(
        self,
        alert_type: str,
        level: str | None = None,
        message: str = "",
        sample: Mapping[str, Any] | None = None,
    ) -> ReportOutcome:
        """Submit an externally reported alert through the cooldown gate."""
        outcome = self.evaluator.report(alert_type, level, message, sample)
        if outcome.event is not None:
            self.dispatch_alert(outcome.event)
        return outcome

    async def ingest(self, payload: TelemetryPayload) -> Reading:
        """Feed a device-pushed reading through the sampler's publish path."""
        reading = payload.to_reading(
            self.settings.sampler.device_id, monotonic=self._clock()
        )
        await self.sampler.ingest(reading)
        logger.debug("Ingested reading from %s", reading.device_id)
        return reading

    async def send_test_notification(
        self, title: str, message: str
    ) -> DeliveryOutcome:
        """Deliver a one-off notification, bypassing queue and cooldowns."""
        event = AlertEvent(
            kind=AlertKind.CUSTOM_REPORTED,
            key="test_push",
            severity=Severity.INFO,
            message=message,
            fired_at=datetime.now(UTC),
            title=title,
        )
        return await self.notifications.notifier.deliver(event)

    async def apply_command(self, command: Command) -> ReportOutcome:
        """Forward a command to the gateway and announce it."""
        await self.gateway.apply(command)
        self.hub.publish_envelope(
            Envelope(EnvelopeType.CONTROL, command_to_dict(command))
        )
        report = report_for_command(command)
        return self.report_alert(report.type, report.level, report.message)

    async def start(self) -> None:
        """Start the notifier worker, the event bridge and both timers."""
        if self._running:
            return
        self.evaluator.reset()
        self.notifications.start()
        if self.bridge is not None:
            await self.bridge.start()
        self.sampler.start()
        self.watchdog.start()
        self._running = True
        logger.info(
            "Pipeline started (interval %.2fs, device %s)",
            self.settings.sampler.interval_sec,
            self.settings.sampler.device_id,
        )

    async def stop(self, grace_sec: float | None = None) -> None:
        """Stop the timers, close listeners, then drain notifications."""
        if not self._running:
            return
        self._running = False
        await self.watchdog.stop()
        await self.sampler.stop()
        if self.bridge is not None:
            await self.bridge.stop()
        self.hub.close()
        await self.notifications.stop(grace_sec)
        logger.info("Pipeline stopped")
