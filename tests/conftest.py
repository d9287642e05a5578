"""Shared pytest fixtures for the test suite."""

import logging
from datetime import UTC, datetime

import pytest

from greenhouse.lib.config import Settings
from greenhouse.lib.config.testing import set_settings
from greenhouse.lib.reading import Reading


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture(autouse=True)
def configure_caplog(caplog):
    """Ensure caplog captures logs from the greenhouse namespace."""
    caplog.set_level(logging.INFO, logger="greenhouse")


@pytest.fixture(autouse=True)
def settings():
    """Use default settings, ignoring any local .env file."""
    test_settings = Settings(_env_file=None)
    set_settings(test_settings)
    yield test_settings
    set_settings(None)


@pytest.fixture
def frozen_time():
    """Return a fixed datetime for deterministic tests."""
    return datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_reading(frozen_time):
    """Factory for readings with normal values unless overridden."""

    def _make(
        temperature: float = 25.0,
        humidity: float = 65.0,
        water_level: float = 50.0,
        battery: float = 3.9,
        device_id: str = "test-device",
        monotonic: float = 0.0,
    ) -> Reading:
        return Reading(
            device_id=device_id,
            ts=frozen_time,
            temperature=temperature,
            humidity=humidity,
            water_level=water_level,
            battery=battery,
            monotonic=monotonic,
        )

    return _make
