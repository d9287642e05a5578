"""Notification backends for alert events.

Provides an abstract notification interface with pluggable backends.
Exactly one channel is active at a time: Pushbullet, WhatsApp (CallMeBot)
or Slack. Without a configured channel a no-op backend reports every
event as delivered.
"""

import json
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Self, override

from greenhouse.lib.alerts import AlertEvent
from greenhouse.lib.config import (
    AlertKind,
    NotificationBackend,
    NotificationSettings,
    Severity,
    get_settings,
)
from greenhouse.lib.exceptions import NotificationError
from greenhouse.lib.retry import with_retry
from greenhouse.logging import get_logger

logger = get_logger("lib.notifications")

ALERT_TITLES: dict[str, str] = {
    AlertKind.TEMPERATURE_HIGH: "High temperature",
    AlertKind.WATER_LOW: "Low water level",
    AlertKind.HUMIDITY_HIGH: "High humidity",
    AlertKind.HUMIDITY_LOW: "Low humidity",
    AlertKind.COMMUNICATION_STALE: "Communication failure",
    "emergency_stop": "EMERGENCY STOP",
    "system_paused": "System paused",
    "system_resumed": "System resumed",
}


class DeliveryStatus(StrEnum):
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    """Result of delivering one alert to the external channel."""

    status: DeliveryStatus
    reason: str | None = None
    attempts: int = 0

    @property
    def delivered(self) -> bool:
        return self.status == DeliveryStatus.DELIVERED

    @classmethod
    def ok(cls, attempts: int = 1) -> Self:
        return cls(status=DeliveryStatus.DELIVERED, attempts=attempts)

    @classmethod
    def failed(cls, reason: str | None, attempts: int = 0) -> Self:
        return cls(
            status=DeliveryStatus.FAILED,
            reason=reason or "unknown error",
            attempts=attempts,
        )


def format_alert_title(event: AlertEvent) -> str:
    """Short title for an alert notification."""
    if event.title:
        return event.title
    label = ALERT_TITLES.get(event.key)
    if label is None:
        label = event.key.replace("_", " ").replace("-", " ").capitalize()
    if event.severity == Severity.CRITICAL:
        return f"CRITICAL: {label}"
    return f"Alert: {label}"


def format_alert_message(event: AlertEvent) -> str:
    """Format an alert event as a notification body."""
    body = f"{event.message}\nTime: {event.fired_at.strftime('%H:%M:%S')}"
    if event.sample:
        body += f"\n\nSample: {json.dumps(dict(event.sample), default=str)}"
    return body


class AbstractNotifier(ABC):
    """Abstract base class for notification backends."""

    name = "notifier"

    def __init__(self, settings: NotificationSettings | None = None) -> None:
        self._settings = settings or get_settings().notifications

    @abstractmethod
    async def deliver(self, event: AlertEvent) -> DeliveryOutcome:
        """Deliver one alert and report the outcome."""


class HttpNotifier(AbstractNotifier):
    """Backend that delivers each alert as a single HTTP request."""

    @abstractmethod
    def _build_request(self, event: AlertEvent) -> urllib.request.Request:
        """Build the HTTP request carrying the notification."""

    @override
    async def deliver(self, event: AlertEvent) -> DeliveryOutcome:
        """Deliver an alert, retrying transient network failures."""
        request = self._build_request(event)
        timeout = self._settings.timeout_sec

        def do_send() -> None:
            with urllib.request.urlopen(request, timeout=timeout) as resp:
                if not 200 <= resp.status < 300:
                    raise OSError(f"{self.name} returned status {resp.status}")

        result = await with_retry(
            do_send,
            name=self.name,
            logger=logger,
            max_retries=self._settings.max_retries,
            initial_backoff_sec=self._settings.initial_backoff_sec,
            run_in_thread=True,
        )
        if result.succeeded:
            logger.info("Sent %s notification for %s", self.name, event.key)
            return DeliveryOutcome.ok(result.attempts)
        return DeliveryOutcome.failed(result.reason, result.attempts)


class PushbulletNotifier(HttpNotifier):
    """Pushbullet push notification backend."""

    name = "Pushbullet"

    def __init__(self, settings: NotificationSettings | None = None) -> None:
        super().__init__(settings)
        if not self._settings.pushbullet.token.get_secret_value():
            raise NotificationError("Pushbullet token is not configured")

    @override
    def _build_request(self, event: AlertEvent) -> urllib.request.Request:
        cfg = self._settings.pushbullet
        data = json.dumps(
            {
                "type": "note",
                "title": format_alert_title(event),
                "body": format_alert_message(event),
            }
        ).encode("utf-8")
        return urllib.request.Request(
            cfg.api_url,
            data=data,
            headers={
                "Access-Token": cfg.token.get_secret_value(),
                "Content-Type": "application/json",
            },
            method="POST",
        )


class WhatsAppNotifier(HttpNotifier):
    """WhatsApp backend using the CallMeBot HTTP API."""

    name = "WhatsApp"

    def __init__(self, settings: NotificationSettings | None = None) -> None:
        super().__init__(settings)
        cfg = self._settings.whatsapp
        if not cfg.apikey.get_secret_value() or not cfg.phone:
            raise NotificationError("CallMeBot phone/apikey are not configured")

    @override
    def _build_request(self, event: AlertEvent) -> urllib.request.Request:
        cfg = self._settings.whatsapp
        text = f"{format_alert_title(event)}\n{format_alert_message(event)}"
        query = urllib.parse.urlencode(
            {
                "phone": cfg.phone,
                "text": text,
                "apikey": cfg.apikey.get_secret_value(),
            }
        )
        return urllib.request.Request(f"{cfg.api_url}?{query}", method="GET")


class SlackNotifier(HttpNotifier):
    """Slack webhook notification backend."""

    name = "Slack"

    def __init__(self, settings: NotificationSettings | None = None) -> None:
        super().__init__(settings)
        if not self._settings.slack.webhook_url:
            raise NotificationError("Slack webhook URL is not configured")

    def _build_payload(self, event: AlertEvent) -> dict[str, Any]:
        """Build a Slack message payload."""
        title = format_alert_title(event)
        return {
            "text": title,
            "blocks": [
                {
                    "type": "header",
                    "text": {"type": "plain_text", "text": title},
                },
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": event.message},
                },
                {
                    "type": "context",
                    "elements": [
                        {
                            "type": "mrkdwn",
                            "text": f":clock1: {event.fired_at:%H:%M:%S}",
                        }
                    ],
                },
            ],
        }

    @override
    def _build_request(self, event: AlertEvent) -> urllib.request.Request:
        data = json.dumps(self._build_payload(event)).encode("utf-8")
        return urllib.request.Request(
            self._settings.slack.webhook_url,
            data=data,
            headers={"Content-Type": "application/json"},
            method="POST",
        )


class NoOpNotifier(AbstractNotifier):
    """No-op notifier used when no channel is configured."""

    name = "no-op"

    @override
    async def deliver(self, event: AlertEvent) -> DeliveryOutcome:
        """Log the event and report it as delivered."""
        logger.info(
            "No notification channel configured, skipping %s", event.key
        )
        return DeliveryOutcome.ok(attempts=0)


_BACKEND_MAP: dict[NotificationBackend, type[HttpNotifier]] = {
    NotificationBackend.PUSHBULLET: PushbulletNotifier,
    NotificationBackend.WHATSAPP: WhatsAppNotifier,
    NotificationBackend.SLACK: SlackNotifier,
}


def get_notifier(settings: NotificationSettings | None = None) -> AbstractNotifier:
    """Factory function to get the configured notifier.

    Raises:
        NotificationError: If the selected backend lacks its credentials.
    """
    cfg = settings or get_settings().notifications
    if cfg.backend is None:
        return NoOpNotifier(cfg)
    return _BACKEND_MAP[cfg.backend](cfg)
