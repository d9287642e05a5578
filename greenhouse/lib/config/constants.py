"""Shared constants for the configuration module.

Kept apart from settings.py so the alert rule builder can import them
without pulling in the whole settings model.
"""

# Hysteresis offsets for alert recovery (prevents flapping)
# Alert triggers at threshold, clears at threshold +/- hysteresis
HYSTERESIS_TEMPERATURE = 1.0  # Celsius
HYSTERESIS_HUMIDITY = 3.0  # %
HYSTERESIS_WATER_LEVEL = 2.0  # %

# Physical bounds of a water level reading
WATER_LEVEL_BOUNDS = (0.0, 100.0)

DEFAULT_DEVICE_ID = "mock-esp32-01"
