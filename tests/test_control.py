"""Tests for control command parsing and the logging gateway."""

import pytest

from greenhouse.lib.config import Severity
from greenhouse.lib.control import (
    EmergencyStop,
    LoggingGateway,
    Mode,
    Pause,
    Resume,
    SetActuators,
    command_to_dict,
    parse_command,
    report_for_command,
)
from greenhouse.lib.exceptions import InvalidCommandError


class TestParseCommand:
    def test_actuators(self):
        command = parse_command(
            {"mode": "manual", "irrigation": 30, "fans": 50, "lights": True}
        )

        assert command == SetActuators(
            mode=Mode.MANUAL, irrigation=30, fans=50, lights=True
        )

    def test_partial_actuators(self):
        assert parse_command({"lights": False}) == SetActuators(lights=False)

    @pytest.mark.parametrize(
        "payload,expected",
        [
            ({"paused": True}, Pause()),
            ({"paused": False}, Resume()),
            ({"command": "pause"}, Pause()),
            ({"command": "resume"}, Resume()),
            ({"command": "emergency_stop"}, EmergencyStop()),
        ],
    )
    def test_state_changes(self, payload, expected):
        assert parse_command(payload) == expected

    def test_command_wins_over_other_fields(self):
        payload = {"command": "emergency_stop", "paused": True, "fans": 100}
        assert parse_command(payload) == EmergencyStop()

    def test_unknown_fields_ignored(self):
        assert parse_command({"fans": 10, "extra": 1}) == SetActuators(fans=10)

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"extra": 1},
            {"irrigation": 150},
            {"mode": "turbo"},
            {"command": "explode"},
            ["paused"],
            None,
        ],
    )
    def test_invalid_payloads(self, payload):
        with pytest.raises(InvalidCommandError):
            parse_command(payload)


class TestCommandReports:
    @pytest.mark.parametrize(
        "command,alert_type,level",
        [
            (EmergencyStop(), "emergency_stop", Severity.CRITICAL),
            (Pause(), "system_paused", Severity.WARNING),
            (Resume(), "system_resumed", Severity.WARNING),
            (SetActuators(fans=20), "control_action", Severity.INFO),
        ],
    )
    def test_report_for_command(self, command, alert_type, level):
        report = report_for_command(command)
        assert report.type == alert_type
        assert report.level == level

    def test_actuator_report_lists_settings(self):
        report = report_for_command(SetActuators(irrigation=30, lights=True))
        assert report.message == "Actuators set: irrigation=30, lights=True"

    def test_emergency_stop_wire_form(self):
        assert command_to_dict(EmergencyStop()) == {
            "command": "emergency_stop",
            "mode": "manual",
            "irrigation": 0,
            "fans": 0,
            "lights": False,
        }

    def test_pause_wire_form(self):
        assert command_to_dict(Pause()) == {"paused": True}
        assert command_to_dict(Resume()) == {"paused": False}


class TestLoggingGateway:
    @pytest.mark.asyncio
    async def test_tracks_state(self):
        gateway = LoggingGateway()

        await gateway.apply(SetActuators(mode=Mode.AUTO, fans=40))
        await gateway.apply(SetActuators(lights=True))
        assert gateway.actuators == SetActuators(
            mode=Mode.AUTO, fans=40, lights=True
        )

        await gateway.apply(Pause())
        assert gateway.paused
        await gateway.apply(Resume())
        assert not gateway.paused

        await gateway.apply(EmergencyStop())
        assert gateway.actuators == EmergencyStop().actuators
