"""Tests for the retry helper."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from greenhouse.lib.retry import with_retry
from greenhouse.logging import get_logger

logger = get_logger("tests.retry")


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        fn = MagicMock()

        result = await with_retry(fn, name="test", logger=logger)

        assert result.succeeded
        assert result.attempts == 1
        assert result.reason is None
        fn.assert_called_once()

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        fn = MagicMock(side_effect=[OSError("down"), None])

        with patch("greenhouse.lib.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await with_retry(
                fn, name="test", logger=logger, initial_backoff_sec=2.0
            )

        assert result.succeeded
        assert result.attempts == 2
        sleep.assert_awaited_once_with(2.0)

    @pytest.mark.asyncio
    async def test_exponential_backoff_and_give_up(self):
        fn = MagicMock(side_effect=OSError("down"))

        with patch("greenhouse.lib.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await with_retry(
                fn,
                name="test",
                logger=logger,
                max_retries=3,
                initial_backoff_sec=1.0,
            )

        assert not result.succeeded
        assert result.attempts == 3
        assert result.reason == "down"
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_non_retryable_fails_immediately(self):
        fn = MagicMock(side_effect=ValueError("bad"))

        result = await with_retry(fn, name="test", logger=logger)

        assert not result.succeeded
        assert result.attempts == 1
        assert isinstance(result.error, ValueError)
        fn.assert_called_once()

    @pytest.mark.asyncio
    async def test_async_function(self):
        fn = AsyncMock()

        result = await with_retry(fn, name="test", logger=logger)

        assert result.succeeded
        fn.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_in_thread(self):
        calls = []

        result = await with_retry(
            lambda: calls.append(1), name="test", logger=logger, run_in_thread=True
        )

        assert result.succeeded
        assert calls == [1]
