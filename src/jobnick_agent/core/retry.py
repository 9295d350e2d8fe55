"""Retry policy for calls against the page automation surface."""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from jobnick_agent.config import settings
from jobnick_agent.core.errors import SurfaceNotReadyError
from jobnick_agent.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Bounded exponential backoff over a set of retryable error types."""
    max_attempts: int = 3
    base_delay: float = 5.0
    backoff_factor: float = 2.0
    max_delay: float = 30.0
    retryable: Tuple[Type[BaseException], ...] = field(default=(SurfaceNotReadyError,))

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_retries,
            base_delay=settings.retry_base_delay_seconds,
            backoff_factor=settings.retry_backoff_factor,
            max_delay=settings.retry_max_delay_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return min(self.base_delay * (self.backoff_factor ** (attempt - 1)), self.max_delay)

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        return isinstance(error, self.retryable) and attempt < self.max_attempts

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "operation",
        on_retry: Optional[Callable[[int, BaseException], Awaitable[None]]] = None,
    ) -> T:
        """
        Await ``operation`` until it succeeds or a non-retryable error occurs.

        The last retryable error is re-raised once attempts are exhausted.
        """
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as e:
                if not self.should_retry(e, attempt):
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "Retrying after transport error",
                    operation=description,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay_seconds=delay,
                    error=str(e),
                )
                if on_retry is not None:
                    await on_retry(attempt, e)
                await asyncio.sleep(delay)
                attempt += 1
