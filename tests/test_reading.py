"""Tests for readings, telemetry decoding and the rolling history."""

import json
import logging

import pytest

from greenhouse.lib.exceptions import TelemetryError
from greenhouse.lib.reading import (
    RollingHistory,
    clamp_water_level,
    decode_line,
    parse_line,
)


class TestReading:
    @pytest.mark.parametrize("raw,expected", [(120.0, 100.0), (-5.0, 0.0), (42.5, 42.5)])
    def test_water_level_is_clamped(self, make_reading, raw, expected):
        assert make_reading(water_level=raw).water_level == expected
        assert clamp_water_level(raw) == expected

    def test_to_dict(self, make_reading):
        data = make_reading(temperature=22.5).to_dict()

        assert data == {
            "device_id": "test-device",
            "ts": "2024-06-15T12:00:00+00:00",
            "temperature": 22.5,
            "humidity": 65.0,
            "water_level": 50.0,
            "battery": 3.9,
        }

    def test_monotonic_not_part_of_equality(self, make_reading):
        assert make_reading(monotonic=1.0) == make_reading(monotonic=2.0)

    def test_is_immutable(self, make_reading):
        reading = make_reading()
        with pytest.raises(AttributeError):
            reading.temperature = 40.0


class TestDecodeLine:
    def test_snake_case_line(self):
        line = json.dumps(
            {
                "device_id": "esp-1",
                "temperature": 23.1,
                "humidity": 55.2,
                "water_level": 61.0,
                "battery": 3.8,
            }
        )

        reading = decode_line(line, "default")

        assert reading.device_id == "esp-1"
        assert reading.temperature == 23.1
        assert reading.water_level == 61.0
        assert reading.battery == 3.8

    def test_camel_case_line_with_defaults(self):
        line = json.dumps({"temperature": 20, "humidity": 50, "waterLevel": 150})

        reading = decode_line(line, "default")

        assert reading.device_id == "default"
        assert reading.water_level == 100.0
        assert reading.battery == 0.0

    def test_invalid_json(self):
        with pytest.raises(TelemetryError, match="invalid JSON"):
            decode_line("{not json", "default")

    def test_not_an_object(self):
        with pytest.raises(TelemetryError, match="expected JSON object"):
            decode_line("[1, 2, 3]", "default")

    def test_missing_field(self):
        with pytest.raises(TelemetryError, match="temperature"):
            decode_line(json.dumps({"humidity": 50, "water_level": 10}), "d")

    def test_non_numeric_field(self):
        line = json.dumps(
            {"temperature": "hot", "humidity": 50, "water_level": 10}
        )
        with pytest.raises(TelemetryError):
            decode_line(line, "d")


class TestParseLine:
    def test_blank_line_is_skipped(self):
        assert parse_line("   \n", "d") is None

    def test_malformed_line_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="greenhouse"):
            assert parse_line("garbage", "d") is None
        assert "Skipping malformed telemetry line" in caplog.text

    def test_valid_line(self):
        line = '{"temperature": 21, "humidity": 60, "water_level": 30}\n'
        reading = parse_line(line, "d")
        assert reading is not None
        assert reading.temperature == 21


class TestRollingHistory:
    def test_evicts_oldest_when_full(self, make_reading):
        history = RollingHistory(capacity=3)
        for temp in (20, 21, 22, 23):
            history.append(make_reading(temperature=temp))

        assert len(history) == 3
        assert [r.temperature for r in history.snapshot()] == [21, 22, 23]
        assert history.latest().temperature == 23

    def test_empty_history(self):
        history = RollingHistory()
        assert history.latest() is None
        assert history.snapshot() == []
        assert history.capacity == 300

    def test_clear(self, make_reading):
        history = RollingHistory(capacity=5)
        history.append(make_reading())
        history.clear()
        assert len(history) == 0

    def test_snapshot_is_a_copy(self, make_reading):
        history = RollingHistory(capacity=5)
        history.append(make_reading())
        snapshot = history.snapshot()
        history.append(make_reading())
        assert len(snapshot) == 1

    def test_iteration_order(self, make_reading):
        history = RollingHistory(capacity=5)
        for temp in (1, 2, 3):
            history.append(make_reading(temperature=temp))
        assert [r.temperature for r in history] == [1, 2, 3]

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            RollingHistory(capacity=0)
