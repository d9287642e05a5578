"""Telemetry readings and the rolling history buffer."""

from __future__ import annotations

import json
import threading
import time
from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from greenhouse.lib.config.constants import WATER_LEVEL_BOUNDS
from greenhouse.lib.exceptions import TelemetryError
from greenhouse.logging import get_logger

logger = get_logger("lib.reading")


def clamp_water_level(value: float) -> float:
    """Clamp a water level percentage into its physical bounds."""
    low, high = WATER_LEVEL_BOUNDS
    return max(low, min(high, value))


@dataclass(frozen=True, slots=True)
class Reading:
    """One timestamped snapshot of the greenhouse sensors.

    ``ts`` is wall-clock time for display; ``monotonic`` is the clock used
    for every interval computation and is never serialized.
    """

    device_id: str
    ts: datetime
    temperature: float
    humidity: float
    water_level: float
    battery: float
    monotonic: float = field(default_factory=time.monotonic, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "water_level", clamp_water_level(self.water_level)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "ts": self.ts.isoformat(),
            "temperature": self.temperature,
            "humidity": self.humidity,
            "water_level": self.water_level,
            "battery": self.battery,
        }


class TelemetryPayload(BaseModel):
    """Validated telemetry line as sent by the controller board.

    Accepts both the snake_case fields of the relay and the camelCase
    fields pushed by devices over HTTP.
    """

    model_config = ConfigDict(extra="ignore")

    device_id: str | None = Field(
        default=None, validation_alias=AliasChoices("device_id", "deviceId")
    )
    temperature: float
    humidity: float
    water_level: float = Field(
        validation_alias=AliasChoices("water_level", "waterLevel")
    )
    battery: float = 0.0

    def to_reading(
        self,
        default_device_id: str,
        ts: datetime | None = None,
        monotonic: float | None = None,
    ) -> Reading:
        return Reading(
            device_id=self.device_id or default_device_id,
            ts=ts or datetime.now(UTC),
            temperature=self.temperature,
            humidity=self.humidity,
            water_level=self.water_level,
            battery=self.battery,
            monotonic=time.monotonic() if monotonic is None else monotonic,
        )


def decode_line(
    line: str, default_device_id: str, monotonic: float | None = None
) -> Reading:
    """Decode one JSON telemetry line into a reading.

    Raises:
        TelemetryError: If the line is not a valid telemetry object.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise TelemetryError(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise TelemetryError(
            f"expected JSON object, got {type(data).__name__}"
        )

    try:
        payload = TelemetryPayload.model_validate(data)
    except ValidationError as e:
        raise TelemetryError(
            f"{e.error_count()} invalid field(s): "
            + ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        ) from e
    return payload.to_reading(default_device_id, monotonic=monotonic)


def parse_line(
    line: str, default_device_id: str, monotonic: float | None = None
) -> Reading | None:
    """Parse a telemetry line, returning None when it should be skipped."""
    line = line.strip()
    if not line:
        return None
    try:
        return decode_line(line, default_device_id, monotonic)
    except TelemetryError as e:
        logger.warning("Skipping malformed telemetry line: %s", e)
        return None


class RollingHistory:
    """Bounded, insertion-ordered buffer of the most recent readings.

    Appending past capacity evicts the oldest reading.
    """

    def __init__(self, capacity: int = 300) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._lock = threading.Lock()
        self._readings: deque[Reading] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._readings.maxlen or 0

    def append(self, reading: Reading) -> None:
        with self._lock:
            self._readings.append(reading)

    def latest(self) -> Reading | None:
        with self._lock:
            return self._readings[-1] if self._readings else None

    def snapshot(self) -> list[Reading]:
        """Return the buffered readings, oldest first."""
        with self._lock:
            return list(self._readings)

    def clear(self) -> None:
        with self._lock:
            self._readings.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._readings)

    def __iter__(self) -> Iterator[Reading]:
        return iter(self.snapshot())
