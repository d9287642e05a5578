"""Telemetry sources: a simulated board and the real serial link."""

import json
import math
import random
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

from greenhouse.lib.config import SamplerSettings, get_settings
from greenhouse.lib.config.constants import DEFAULT_DEVICE_ID
from greenhouse.lib.reading import clamp_water_level
from greenhouse.logging import get_logger

logger = get_logger("sampler.sources")

INJECTABLE_FIELDS = frozenset({"temperature", "humidity", "water_level", "battery"})


class TelemetrySource(Protocol):
    """Protocol for telemetry line sources."""

    async def readline(self) -> str: ...
    def close(self) -> None: ...


class SimulatedSource:
    """Simulated controller producing smooth, slightly noisy signals.

    Each field follows a slow sinusoid plus bounded uniform noise; the
    battery drains linearly. Seed the generator for reproducible runs.
    """

    def __init__(
        self,
        device_id: str = DEFAULT_DEVICE_ID,
        *,
        seed: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.device_id = device_id
        self._rng = random.Random(seed)
        self._clock = clock
        self._t0 = clock()
        self._overrides: dict[str, tuple[float, float]] = {}

    def _noise(self, amplitude: float) -> float:
        return (self._rng.random() - 0.5) * 2 * amplitude

    def sample(self) -> dict[str, object]:
        """Compute the signal values at the current instant."""
        now = self._clock()
        s = now - self._t0
        temperature = 22 + 2 * math.sin(s * 0.05) + self._noise(0.2)
        humidity = 55 + 8 * math.sin(s * 0.03 + 1.2) + self._noise(0.6)
        water = 60 + 20 * math.sin(s * 0.01 + 2.5) + self._noise(1.0)
        battery = 3.9 - 0.00005 * s + self._noise(0.0005)

        values = {
            "temperature": round(temperature, 2),
            "humidity": round(humidity, 2),
            "water_level": round(clamp_water_level(water), 2),
            "battery": round(battery, 3),
        }
        for field, (value, until) in list(self._overrides.items()):
            if now >= until:
                del self._overrides[field]
                logger.info("Injected %s override expired", field)
            else:
                values[field] = value

        return {
            "device_id": self.device_id,
            "ts": datetime.now(UTC).isoformat(),
            **values,
        }

    def inject(self, field: str, value: float, duration_sec: float = 5.0) -> None:
        """Override a field with a fixed value for a while.

        Raises:
            ValueError: If the field is unknown or the duration is not positive.
        """
        if field not in INJECTABLE_FIELDS:
            raise ValueError(f"unknown field: {field}")
        if duration_sec <= 0:
            raise ValueError("duration must be positive")
        self._overrides[field] = (float(value), self._clock() + duration_sec)
        logger.info(
            "Injected %s=%s for %.1fs", field, value, duration_sec
        )

    async def readline(self) -> str:
        """Return one telemetry line for the current instant."""
        return json.dumps(self.sample())

    def close(self) -> None:
        """No-op for the simulated source."""


class SerialLineSource:
    """JSON lines read from the controller's serial link."""

    def __init__(self, settings: SamplerSettings | None = None) -> None:
        import aioserial

        cfg = settings or get_settings().sampler
        self._serial = aioserial.AioSerial(
            port=cfg.serial_port,
            baudrate=cfg.serial_baud,
            timeout=cfg.serial_timeout_sec,
        )
        self._port = cfg.serial_port
        logger.info("Connected to controller on %s", self._port)

    async def readline(self) -> str:
        """Read a line from the serial port, or '' on timeout."""
        data = await self._serial.readline_async()
        if not data:
            return ""
        return data.decode("utf-8", errors="replace")

    def close(self) -> None:
        """Close the serial connection."""
        self._serial.close()
        logger.info("Serial port %s closed", self._port)


def create_source(
    settings: SamplerSettings | None = None,
    *,
    clock: Callable[[], float] = time.monotonic,
) -> TelemetrySource:
    """Create the telemetry source selected by configuration."""
    cfg = settings or get_settings().sampler
    if cfg.mock_sensors:
        logger.info("Using simulated telemetry source")
        return SimulatedSource(
            cfg.device_id, seed=cfg.simulation_seed, clock=clock
        )
    return SerialLineSource(cfg)
