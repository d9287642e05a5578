"""Enumerations for the greenhouse relay."""

from enum import StrEnum


class NotificationBackend(StrEnum):
    PUSHBULLET = "pushbullet"
    WHATSAPP = "whatsapp"
    SLACK = "slack"


class Unit(StrEnum):
    """Measurement units for sensor readings."""

    CELSIUS = "°C"
    PERCENT = "%"
    VOLT = "V"


class ThresholdType(StrEnum):
    """Direction of a threshold check."""

    MIN = "min"  # Alert when value < threshold
    MAX = "max"  # Alert when value > threshold


class MeasureName(StrEnum):
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    WATER_LEVEL = "water_level"
    BATTERY = "battery"


class AlertKind(StrEnum):
    """Alert kinds tracked by the evaluator."""

    TEMPERATURE_HIGH = "temperature-high"
    WATER_LOW = "water-low"
    HUMIDITY_HIGH = "humidity-high"
    HUMIDITY_LOW = "humidity-low"
    COMMUNICATION_STALE = "communication-stale"
    CUSTOM_REPORTED = "custom-reported"


class Severity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


MEASURE_UNITS: dict[MeasureName, Unit] = {
    MeasureName.TEMPERATURE: Unit.CELSIUS,
    MeasureName.HUMIDITY: Unit.PERCENT,
    MeasureName.WATER_LEVEL: Unit.PERCENT,
    MeasureName.BATTERY: Unit.VOLT,
}
