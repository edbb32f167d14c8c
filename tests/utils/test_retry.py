"""
Tests for retry_async and backoff.
"""
import pytest
from unittest.mock import patch, AsyncMock

from app.utils.retry import compute_backoff_delay, retry_async


class TestComputeBackoffDelay:

    @pytest.mark.parametrize("attempt,expected", [(0, 0.5), (1, 1.0), (2, 2.0)])
    def test_exponential_with_jitter(self, attempt, expected):
        delay = compute_backoff_delay(attempt, base_delay=0.5, max_delay=5.0)
        assert expected * 0.8 <= delay <= expected * 1.2

    def test_capped(self):
        assert compute_backoff_delay(10, base_delay=0.5, max_delay=5.0) <= 6.0


class TestRetryAsync:

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        fn = AsyncMock(return_value="ok")
        assert await retry_async(fn) == "ok"
        assert fn.await_count == 1

    @pytest.mark.asyncio
    async def test_plain_value_callable(self):
        assert await retry_async(lambda: 42) == 42

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        fn = AsyncMock(side_effect=[ConnectionError("reset"), TimeoutError(), "ok"])
        with patch('app.utils.retry.compute_backoff_delay', return_value=0):
            assert await retry_async(fn, retries=2) == "ok"
        assert fn.await_count == 3

    @pytest.mark.asyncio
    async def test_reraises_after_last_attempt(self):
        fn = AsyncMock(side_effect=ConnectionError("down"))
        with patch('app.utils.retry.compute_backoff_delay', return_value=0):
            with pytest.raises(ConnectionError):
                await retry_async(fn, retries=2)
        assert fn.await_count == 3

    @pytest.mark.asyncio
    async def test_domain_errors_are_not_retried(self):
        fn = AsyncMock(side_effect=KeyError("package"))
        with pytest.raises(KeyError):
            await retry_async(fn)
        assert fn.await_count == 1
