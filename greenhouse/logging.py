"""Logging setup shared by the sampler, the web server and the CLI entries."""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s - %(message)s"
ROOT_LOGGER = "greenhouse"

_handler: logging.Handler | None = None


def configure(level: int | str | None = None) -> None:
    """Attach a single stderr handler to the ``greenhouse`` logger tree.

    The level defaults to ``LOG_LEVEL`` from settings. Repeated calls only
    adjust the level. Uvicorn's loggers share the handler so server and
    pipeline lines interleave in one format.
    """
    global _handler

    if level is None:
        from greenhouse.lib.config import get_settings

        level = get_settings().log_level
    if isinstance(level, str):
        level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    if _handler is not None:
        return

    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(_handler)

    uv_log = logging.getLogger("uvicorn")
    uv_log.handlers.clear()
    uv_log.addHandler(_handler)

    # Stream handlers log their own connects and disconnects
    logging.getLogger("uvicorn.protocols.websockets").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``greenhouse`` namespace, e.g. ``greenhouse.lib.hub``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
