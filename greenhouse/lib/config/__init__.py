"""Centralized configuration for the greenhouse relay.

This package provides:
- Enums for measures, alert kinds, severities and notification backends
- Pydantic settings models for configuration
"""

from .enums import (
    MEASURE_UNITS,
    AlertKind,
    MeasureName,
    NotificationBackend,
    Severity,
    ThresholdType,
    Unit,
)
from .settings import (
    AlertSettings,
    EventBusSettings,
    NotificationSettings,
    PushbulletSettings,
    SamplerSettings,
    Settings,
    SlackSettings,
    StreamSettings,
    ThresholdRule,
    WhatsAppSettings,
    get_settings,
)

__all__ = [
    # Enums
    "AlertKind",
    "MeasureName",
    "NotificationBackend",
    "Severity",
    "ThresholdType",
    "Unit",
    # Settings models
    "AlertSettings",
    "EventBusSettings",
    "NotificationSettings",
    "PushbulletSettings",
    "SamplerSettings",
    "Settings",
    "SlackSettings",
    "StreamSettings",
    "ThresholdRule",
    "WhatsAppSettings",
    # Constants
    "MEASURE_UNITS",
    # Functions
    "get_settings",
]
