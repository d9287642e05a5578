"""Settings overrides for tests. Not for production code."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import greenhouse.lib.config.settings as _settings_module
from greenhouse.lib.config.settings import Settings, _load_settings


def set_settings(settings: Settings | None) -> None:
    """Install ``settings`` as the global instance, or None to reload from env."""
    _settings_module._settings_override = settings
    _load_settings.cache_clear()


@contextmanager
def override_settings(**values: Any) -> Iterator[Settings]:
    """Use env-independent settings with ``values`` applied, then restore."""
    previous = _settings_module._settings_override
    settings = Settings(_env_file=None, **values)
    set_settings(settings)
    try:
        yield settings
    finally:
        set_settings(previous)
