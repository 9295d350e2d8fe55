"""Tests for the transport retry policy."""

from unittest.mock import AsyncMock

import pytest

from jobnick_agent.core.errors import SurfaceActionError, SurfaceNotReadyError
from jobnick_agent.core.retry import RetryPolicy


class TestRetryPolicy:

    def test_delays_grow_and_are_capped(self):
        policy = RetryPolicy(base_delay=5, backoff_factor=2, max_delay=30)

        assert [policy.delay_for(n) for n in range(1, 5)] == [5, 10, 20, 30]

    def test_only_typed_errors_are_retryable(self):
        policy = RetryPolicy(max_attempts=3)

        assert policy.should_retry(SurfaceNotReadyError("loading"), 1)
        assert not policy.should_retry(SurfaceNotReadyError("loading"), 3)
        assert not policy.should_retry(SurfaceActionError("connection refused"), 1)

    @pytest.mark.asyncio
    async def test_run_retries_until_success(self, fast_retry):
        operation = AsyncMock(side_effect=[SurfaceNotReadyError("a"), SurfaceNotReadyError("b"), "done"])
        on_retry = AsyncMock()

        assert await fast_retry.run(operation, "ping", on_retry=on_retry) == "done"
        assert operation.await_count == 3
        assert on_retry.await_count == 2

    @pytest.mark.asyncio
    async def test_run_reraises_after_exhaustion(self, fast_retry):
        operation = AsyncMock(side_effect=SurfaceNotReadyError("never ready"))

        with pytest.raises(SurfaceNotReadyError):
            await fast_retry.run(operation)
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_run_does_not_retry_other_errors(self, fast_retry):
        operation = AsyncMock(side_effect=SurfaceActionError("selector missing"))

        with pytest.raises(SurfaceActionError):
            await fast_retry.run(operation)
        assert operation.await_count == 1
