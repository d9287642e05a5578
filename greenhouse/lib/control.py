"""Operator control commands.

Control payloads are a loose subset of ``{mode, irrigation, fans, lights,
paused, command}``. They are validated into one of four intents and handed
to a ControlGateway, which owns the translation to the actuation layer.
"""

from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from greenhouse.lib.config import Severity
from greenhouse.lib.exceptions import InvalidCommandError
from greenhouse.logging import get_logger

logger = get_logger("lib.control")


class Mode(StrEnum):
    AUTO = "auto"
    MANUAL = "manual"


class CommandName(StrEnum):
    """Explicit values accepted in the ``command`` field."""

    PAUSE = "pause"
    RESUME = "resume"
    EMERGENCY_STOP = "emergency_stop"


@dataclass(frozen=True, slots=True)
class Pause:
    pass


@dataclass(frozen=True, slots=True)
class Resume:
    pass


@dataclass(frozen=True, slots=True)
class SetActuators:
    """Actuator setpoints; fields left as None are unchanged."""

    mode: Mode | None = None
    irrigation: float | None = None
    fans: float | None = None
    lights: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True, slots=True)
class EmergencyStop:
    """Halt every actuator and drop to manual mode."""

    @property
    def actuators(self) -> SetActuators:
        return SetActuators(
            mode=Mode.MANUAL, irrigation=0, fans=0, lights=False
        )


type Command = Pause | Resume | SetActuators | EmergencyStop


class ControlPayload(BaseModel):
    """Raw control request body."""

    model_config = ConfigDict(extra="ignore")

    mode: Mode | None = None
    irrigation: float | None = Field(default=None, ge=0, le=100)
    fans: float | None = Field(default=None, ge=0, le=100)
    lights: bool | None = None
    paused: bool | None = None
    command: CommandName | None = None


def parse_command(data: Any) -> Command:
    """Validate a control payload into a single command.

    An explicit ``command`` wins over ``paused``, which wins over actuator
    setpoints.

    Raises:
        InvalidCommandError: If the payload is malformed or empty.
    """
    if not isinstance(data, dict):
        raise InvalidCommandError("control payload must be a JSON object")

    try:
        payload = ControlPayload.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(
            ".".join(str(p) for p in err["loc"]) for err in e.errors()
        )
        raise InvalidCommandError(f"invalid control field(s): {fields}") from e

    match payload.command:
        case CommandName.EMERGENCY_STOP:
            return EmergencyStop()
        case CommandName.PAUSE:
            return Pause()
        case CommandName.RESUME:
            return Resume()

    if payload.paused is not None:
        return Pause() if payload.paused else Resume()

    actuators = SetActuators(
        mode=payload.mode,
        irrigation=payload.irrigation,
        fans=payload.fans,
        lights=payload.lights,
    )
    if not actuators.to_dict():
        raise InvalidCommandError("control payload carries no command")
    return actuators


@dataclass(frozen=True, slots=True)
class CommandReport:
    """A reported alert originated by an operational state change."""

    type: str
    level: Severity
    message: str


def report_for_command(command: Command) -> CommandReport:
    """Describe the alert-worthy side of a command."""
    match command:
        case EmergencyStop():
            return CommandReport(
                "emergency_stop",
                Severity.CRITICAL,
                "Emergency stop engaged, all actuators halted",
            )
        case Pause():
            return CommandReport(
                "system_paused", Severity.WARNING, "System paused by operator"
            )
        case Resume():
            return CommandReport(
                "system_resumed", Severity.WARNING, "System resumed by operator"
            )
        case SetActuators():
            settings = ", ".join(
                f"{k}={v}" for k, v in command.to_dict().items()
            )
            return CommandReport(
                "control_action", Severity.INFO, f"Actuators set: {settings}"
            )


def command_to_dict(command: Command) -> dict[str, Any]:
    """Wire form of a command for ``control`` envelopes."""
    match command:
        case EmergencyStop():
            return {
                "command": CommandName.EMERGENCY_STOP.value,
                **command.actuators.to_dict(),
            }
        case Pause():
            return {"paused": True}
        case Resume():
            return {"paused": False}
        case SetActuators():
            return command.to_dict()


class ControlGateway(Protocol):
    """Receives parsed commands and applies them to the actuation layer."""

    async def apply(self, command: Command) -> None: ...


class LoggingGateway:
    """Gateway that records commands without actuating anything."""

    def __init__(self) -> None:
        self.paused = False
        self.actuators = SetActuators()

    async def apply(self, command: Command) -> None:
        match command:
            case EmergencyStop():
                self.actuators = command.actuators
                logger.warning("Emergency stop applied")
            case Pause():
                self.paused = True
                logger.info("System paused")
            case Resume():
                self.paused = False
                logger.info("System resumed")
            case SetActuators():
                self.actuators = SetActuators(
                    **{**asdict(self.actuators), **command.to_dict()}
                )
                logger.info("Actuators updated: %s", command.to_dict())
