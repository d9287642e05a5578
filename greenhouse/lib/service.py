"""Service runner for headless entry points."""

import asyncio
import signal
from collections.abc import Awaitable, Callable
from contextlib import suppress

from greenhouse.logging import configure, get_logger


def run_service(
    main: Callable[[], Awaitable[None]],
    *,
    name: str = "service",
) -> None:
    """Run an async service until SIGTERM/SIGINT.

    Configures logging, then runs ``main`` as a task. A shutdown signal
    cancels that task, so ``main`` releases its resources in ``finally``
    blocks before the loop closes.

    Args:
        main: Async function to run (typically named ``run``).
        name: Service name for logging.
    """
    configure()
    logger = get_logger(f"{name}.service")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    task = loop.create_task(main())

    def _shutdown(sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down %s", sig.name, name)
        task.cancel()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _shutdown, sig)

    with suppress(KeyboardInterrupt, asyncio.CancelledError):
        loop.run_until_complete(task)
    loop.close()
