"""Retry utilities with exponential backoff."""
import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from logging import Logger


@dataclass(frozen=True, slots=True)
class RetryResult:
    """Outcome of a retried call."""

    succeeded: bool
    attempts: int
    error: Exception | None = None

    @property
    def reason(self) -> str | None:
        return str(self.error) if self.error is not None else None


async def with_retry(
    fn: Callable[[], None] | Callable[[], Awaitable[None]],
    *,
    name: str,
    logger: Logger,
    max_retries: int = 3,
    initial_backoff_sec: float = 2.0,
    retryable_exceptions: tuple[type[Exception], ...] = (OSError,),
    run_in_thread: bool = False,
) -> RetryResult:
    """Call `fn` up to `max_retries` times, doubling the delay between tries.

    Only `retryable_exceptions` are retried; anything else fails at once.
    With `run_in_thread`, a blocking `fn` runs in the default executor.

    Returns:
        A RetryResult with the attempt count and the last error, if any.
    """
    last_error: Exception | None = None

    for attempt in range(1, max_retries + 1):
        try:
            if run_in_thread:
                await asyncio.to_thread(fn)
            elif inspect.iscoroutinefunction(fn):
                await fn()
            else:
                fn()
            return RetryResult(succeeded=True, attempts=attempt)
        except retryable_exceptions as e:
            last_error = e
            if attempt == max_retries:
                break
            backoff = initial_backoff_sec * (2 ** (attempt - 1))
            logger.warning(
                "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
                name,
                attempt,
                max_retries,
                e,
                backoff,
            )
            await asyncio.sleep(backoff)
        except Exception as e:
            logger.error("%s failed (non-retryable): %s", name, e)
            return RetryResult(succeeded=False, attempts=attempt, error=e)

    logger.error(
        "%s failed after %d attempts. Last error: %s",
        name,
        max_retries,
        last_error,
    )
    return RetryResult(succeeded=False, attempts=max_retries, error=last_error)
