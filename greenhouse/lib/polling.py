"""Generic async polling service abstraction.

Provides a reusable base class for periodic services that follow the
poll → publish → audit pattern with a configurable interval.
"""
import asyncio
from abc import ABC, abstractmethod
from contextlib import suppress

from greenhouse.logging import get_logger


class PollingService[T](ABC):
    """Abstract base class for async polling services.

    Implements the common polling loop pattern with:
    - Configurable polling frequency with drift compensation
    - Graceful shutdown through ``stop()``
    - Error recovery: a failing cycle never ends the loop
    """

    def __init__(self, name: str, frequency_sec: float) -> None:
        """Initialize the polling service.

        Args:
            name: Service name for logging.
            frequency_sec: Polling frequency in seconds.
        """
        if frequency_sec <= 0:
            raise ValueError("frequency_sec must be positive")
        self.name = name
        self.frequency_sec = frequency_sec
        self._shutdown = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._logger = get_logger(f"polling.{name}")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def initialize(self) -> None:
        """Acquire resources before the first cycle. Default does nothing."""

    async def cleanup(self) -> None:
        """Release resources once the loop exits. Default does nothing."""

    @abstractmethod
    async def poll(self) -> T | None:
        """Produce the next value.

        Returns:
            A value, or None if this cycle should be skipped.
        """

    async def publish(self, value: T) -> None:
        """Hand a polled value to its consumers. Default does nothing."""

    async def audit(self, value: T) -> None:
        """Check a published value, e.g. against alert rules."""

    def on_poll_error(self, error: Exception) -> None:
        """Handle an error that occurred during a cycle.

        Override to customize error handling. Default logs the error.
        """
        self._logger.error("%s cycle failed: %s", self.name, error)

    async def tick(self) -> T | None:
        """Execute a single poll → publish → audit cycle."""
        value = await self.poll()
        if value is not None:
            await self.publish(value)
            await self.audit(value)
        return value

    def request_shutdown(self) -> None:
        """Ask the loop to exit after the current cycle."""
        self._shutdown.set()

    async def _run_loop(self) -> None:
        """Run the async polling loop with precise timing."""
        await self.initialize()
        self._logger.info("%s polling service started", self.name)

        loop = asyncio.get_running_loop()

        try:
            while not self._shutdown.is_set():
                cycle_start = loop.time()

                try:
                    await self.tick()
                except Exception as e:
                    self.on_poll_error(e)

                # Sleep only the remaining time to maintain consistent intervals
                elapsed = loop.time() - cycle_start
                sleep_time = max(0.0, self.frequency_sec - elapsed)
                with suppress(TimeoutError):
                    await asyncio.wait_for(self._shutdown.wait(), sleep_time)
        finally:
            self._logger.info("Cleaning up resources...")
            await self.cleanup()
            self._logger.info("%s shutdown complete", self.name)

    def start(self) -> asyncio.Task[None]:
        """Start the loop as a background task on the running event loop."""
        if self.running:
            raise RuntimeError(f"{self.name} is already running")
        self._shutdown.clear()
        self._task = asyncio.create_task(
            self._run_loop(), name=f"polling-{self.name}"
        )
        return self._task

    async def stop(self) -> None:
        """Stop the background loop and wait for its cleanup."""
        self.request_shutdown()
        if self._task is not None:
            await self._task
            self._task = None

