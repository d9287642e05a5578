"""Custom exceptions for the greenhouse relay.

Provides a hierarchy of domain-specific exceptions so callers can tell
pipeline failures apart from programming errors.
"""


class GreenhouseError(Exception):
    """Base exception for all application errors."""


class TelemetryError(GreenhouseError):
    """Raised when a telemetry line cannot be turned into a reading."""


class InvalidCommandError(GreenhouseError):
    """Raised when a control payload does not map to a known intent."""


class NotificationError(GreenhouseError):
    """Base exception for notification-related errors."""
