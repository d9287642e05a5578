"""Alert evaluation for sensor thresholds, staleness and reported events.

Provides an AlertEvaluator that owns the per-kind alert state machines and
the cooldown bookkeeping, and returns AlertEvent values only when a kind
transitions into firing and its cooldown has elapsed.

Threshold kinds are edge-triggered with hysteresis: once firing, a kind
only re-arms after the value recovers past ``threshold -/+ hysteresis``.

Thread-safe: state mutations are serialized by a lock so the evaluator can
be shared between the sampler loop and request handlers.
"""

import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from greenhouse.lib.config import (
    MEASURE_UNITS,
    AlertKind,
    AlertSettings,
    Severity,
    ThresholdRule,
    ThresholdType,
)
from greenhouse.lib.reading import Reading
from greenhouse.logging import get_logger

logger = get_logger("lib.alerts")

type Clock = Callable[[], float]
type WallClock = Callable[[], datetime]

COOLDOWN_REASON = "cooldown"


class AlertState(Enum):
    """Lifecycle of a single alert kind."""

    IDLE = "idle"
    FIRING = "firing"
    COOLING_DOWN = "cooling-down"


@dataclass(frozen=True, slots=True)
class AlertEvent:
    """An alert emitted on a kind's transition into firing."""

    kind: AlertKind
    key: str
    severity: Severity
    message: str
    fired_at: datetime
    reading: Reading | None = None
    value: float | None = None
    threshold: float | None = None
    sample: Mapping[str, Any] | None = None
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "type": self.key,
            "level": self.severity.value,
            "message": self.message,
            "fired_at": self.fired_at.isoformat(),
            "value": self.value,
            "threshold": self.threshold,
            "reading": self.reading.to_dict() if self.reading else None,
            "sample": dict(self.sample) if self.sample is not None else None,
        }


@dataclass(frozen=True, slots=True)
class ReportOutcome:
    """Result of submitting an externally reported alert."""

    sent: bool
    event: AlertEvent | None = None
    reason: str | None = None

    @property
    def skipped(self) -> bool:
        return not self.sent


class CooldownState:
    """Last-fire times per dedupe key, on the monotonic clock."""

    def __init__(self) -> None:
        self._last_fired: dict[str, float] = {}

    def elapsed(self, key: str, cooldown_sec: float, now: float) -> bool:
        """Check whether the key may fire again at ``now``."""
        last = self._last_fired.get(key)
        return last is None or now - last >= cooldown_sec

    def mark(self, key: str, now: float) -> None:
        self._last_fired[key] = now

    def last_fired(self, key: str) -> float | None:
        return self._last_fired.get(key)

    def clear(self) -> None:
        self._last_fired.clear()


def reported_key(alert_type: str) -> str:
    """Cooldown key of a reported alert type, distinct from any AlertKind."""
    return f"reported:{alert_type}"


def parse_severity(level: str | None) -> Severity:
    """Map a free-form level string to a severity, defaulting to warning."""
    if level:
        try:
            return Severity(level.strip().lower())
        except ValueError:
            logger.debug("Unknown alert level %r, using warning", level)
    return Severity.WARNING


def format_threshold_message(rule: ThresholdRule, reading: Reading) -> str:
    """Describe a threshold violation for a notification body."""
    value = getattr(reading, rule.measure)
    unit = MEASURE_UNITS[rule.measure]
    label = rule.measure.replace("_", " ")
    side = "above" if rule.threshold_type == ThresholdType.MAX else "below"
    return (
        f"Device {reading.device_id}: {label} {value:.1f}{unit} "
        f"({side} limit {rule.threshold:g}{unit})"
    )


class AlertEvaluator:
    """Evaluates readings against alert rules and enforces cooldowns.

    Each alert kind walks its own IDLE -> FIRING -> COOLING_DOWN machine:

    - IDLE or COOLING_DOWN, violated: emit if the cooldown has elapsed,
      otherwise suppress; either way the key latches in FIRING.
    - FIRING: no re-emission until the value recovers, then IDLE once the
      cooldown has elapsed or COOLING_DOWN until it does.
    - COOLING_DOWN, not violated: IDLE once the cooldown elapses.

    Events are returned, never delivered, so callers own all I/O.
    """

    def __init__(
        self,
        settings: AlertSettings,
        *,
        clock: Clock = time.monotonic,
        wall_clock: WallClock | None = None,
    ) -> None:
        self._settings = settings
        self._clock = clock
        self._wall_clock = wall_clock or (lambda: datetime.now(UTC))
        self._lock = threading.Lock()
        self._states: dict[str, AlertState] = {}
        self._cooldowns = CooldownState()
        self._suppressed: set[str] = set()
        self._last_seen = clock()
        self._last_reading: Reading | None = None

    @property
    def settings(self) -> AlertSettings:
        return self._settings

    @property
    def last_seen(self) -> float:
        """Monotonic time of the last evaluated reading (or creation)."""
        with self._lock:
            return self._last_seen

    def _step(
        self,
        key: str,
        *,
        violated: bool,
        recovered: bool,
        cooldown_sec: float,
        now: float,
        retry_suppressed: bool = False,
    ) -> tuple[AlertState, bool]:
        """Advance the machine for a key. Caller must hold the lock.

        With ``retry_suppressed``, an episode whose first crossing fell
        inside the cooldown emits once the cooldown elapses, if the
        condition still holds.

        Returns the new state and whether an event should be emitted.
        """
        previous = self._states.get(key, AlertState.IDLE)
        ready = self._cooldowns.elapsed(key, cooldown_sec, now)

        if previous == AlertState.FIRING:
            if not recovered:
                emit = retry_suppressed and ready and key in self._suppressed
                new = AlertState.FIRING
                if emit:
                    self._cooldowns.mark(key, now)
                    self._suppressed.discard(key)
            else:
                self._suppressed.discard(key)
                new = AlertState.IDLE if ready else AlertState.COOLING_DOWN
                emit = False
        elif violated:
            emit = ready
            new = AlertState.FIRING
            if emit:
                self._cooldowns.mark(key, now)
            else:
                self._suppressed.add(key)
        elif previous == AlertState.COOLING_DOWN and not ready:
            new, emit = AlertState.COOLING_DOWN, False
        else:
            new, emit = AlertState.IDLE, False

        self._states[key] = new
        if previous == AlertState.FIRING and new != AlertState.FIRING:
            logger.info("%s returned to normal", key)
        elif previous != AlertState.FIRING and violated and not emit:
            logger.info("%s crossed again within cooldown, suppressed", key)
        return new, emit

    def evaluate(
        self, reading: Reading, now: float | None = None
    ) -> list[AlertEvent]:
        """Check a new reading against every threshold rule.

        Also marks the device as seen, which clears a stale condition.
        """
        now = reading.monotonic if now is None else now
        events: list[AlertEvent] = []

        with self._lock:
            self._last_seen = now
            self._last_reading = reading
            self._step(
                AlertKind.COMMUNICATION_STALE,
                violated=False,
                recovered=True,
                cooldown_sec=self._settings.stale_cooldown_sec,
                now=now,
            )

            for rule in self._settings.rules:
                value = getattr(reading, rule.measure)
                _, emit = self._step(
                    rule.kind,
                    violated=rule.is_violated(value),
                    recovered=rule.has_recovered(value),
                    cooldown_sec=rule.cooldown_sec,
                    now=now,
                )
                if emit:
                    events.append(
                        AlertEvent(
                            kind=rule.kind,
                            key=rule.kind.value,
                            severity=rule.severity,
                            message=format_threshold_message(rule, reading),
                            fired_at=self._wall_clock(),
                            reading=reading,
                            value=value,
                            threshold=rule.threshold,
                        )
                    )

        for event in events:
            logger.info(
                "[%s] %s crossed threshold: %.1f (threshold: %g)",
                reading.device_id,
                event.key,
                event.value,
                event.threshold,
            )
        return events

    def check_staleness(self, now: float | None = None) -> list[AlertEvent]:
        """Fire a communication-stale alert when readings stopped arriving."""
        now = self._clock() if now is None else now
        cfg = self._settings

        with self._lock:
            gap = now - self._last_seen
            is_stale = gap > cfg.stale_after_sec
            _, emit = self._step(
                AlertKind.COMMUNICATION_STALE,
                violated=is_stale,
                recovered=not is_stale,
                cooldown_sec=cfg.stale_cooldown_sec,
                now=now,
                retry_suppressed=True,
            )
            last = self._last_reading

        if not emit:
            return []

        device = last.device_id if last else "unknown"
        logger.warning("No reading from %s for %.1fs", device, gap)
        return [
            AlertEvent(
                kind=AlertKind.COMMUNICATION_STALE,
                key=AlertKind.COMMUNICATION_STALE.value,
                severity=cfg.stale_severity,
                message=(
                    f"No update received from device {device} "
                    f"for {gap:.0f}s."
                ),
                fired_at=self._wall_clock(),
                reading=last,
                value=gap,
                threshold=cfg.stale_after_sec,
            )
        ]

    def report(
        self,
        alert_type: str,
        level: str | None = None,
        message: str = "",
        sample: Mapping[str, Any] | None = None,
        now: float | None = None,
    ) -> ReportOutcome:
        """Accept an externally reported alert, keyed by its type string.

        Reported alerts have no predicate to re-arm on, so only the cooldown
        applies: within the window the report is skipped, not rejected.
        """
        now = self._clock() if now is None else now
        cooldown = self._settings.report_cooldown_sec
        key = reported_key(alert_type)

        with self._lock:
            skipped = not self._cooldowns.elapsed(key, cooldown, now)
            if not skipped:
                self._cooldowns.mark(key, now)
            self._states[key] = AlertState.COOLING_DOWN

        if skipped:
            logger.info("Reported alert %s skipped (cooldown)", alert_type)
            return ReportOutcome(sent=False, reason=COOLDOWN_REASON)

        event = AlertEvent(
            kind=AlertKind.CUSTOM_REPORTED,
            key=alert_type,
            severity=parse_severity(level),
            message=message or f"Event {alert_type} reported",
            fired_at=self._wall_clock(),
            sample=sample,
        )
        logger.info("Reported alert accepted: %s (%s)", alert_type, event.severity)
        return ReportOutcome(sent=True, event=event)

    def state(self, key: str) -> AlertState:
        """Get the current state for an alert kind or reported type."""
        with self._lock:
            return self._states.get(key, AlertState.IDLE)

    def last_fired(self, key: str) -> float | None:
        with self._lock:
            return self._cooldowns.last_fired(key)

    def is_any_alert(self) -> bool:
        """Check if any threshold or staleness kind is currently firing."""
        with self._lock:
            return any(
                state == AlertState.FIRING for state in self._states.values()
            )

    def states(self) -> dict[str, str]:
        """Snapshot of every tracked key and its state."""
        with self._lock:
            return {key: state.value for key, state in self._states.items()}

    def reset(self) -> None:
        """Forget every state and cooldown, as on a cold start."""
        with self._lock:
            self._states.clear()
            self._cooldowns.clear()
            self._suppressed.clear()
            self._last_seen = self._clock()
            self._last_reading = None
