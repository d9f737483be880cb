"""
Retry Executor
Bounded retry with exponential backoff, shared by every action pipeline and by
the callback dispatcher
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from ondc_adapter.config import settings
from ondc_adapter.core.errors import is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try and how long to wait in between"""
    max_attempts: int = 3
    base_delay: float = 1.0
    backoff_multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay to sleep after the given (1-based) failed attempt: base_delay * multiplier ** attempt"""
        return self.base_delay * (self.backoff_multiplier ** attempt)

    def schedule(self) -> list[float]:
        """All delays slept when every attempt fails"""
        return [self.delay_for(attempt) for attempt in range(1, self.max_attempts)]

    @classmethod
    def for_platform(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.PLATFORM_RETRY_COUNT,
            base_delay=settings.PLATFORM_RETRY_DELAY,
            backoff_multiplier=settings.PLATFORM_BACKOFF_MULTIPLIER,
        )

    @classmethod
    def for_callbacks(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.CALLBACK_RETRY_COUNT,
            base_delay=settings.CALLBACK_RETRY_DELAY,
            backoff_multiplier=settings.CALLBACK_BACKOFF_MULTIPLIER,
        )


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    is_retryable: Callable[[BaseException], bool] = is_transient,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "operation",
) -> T:
    """
    Run `operation` until it succeeds or the policy is exhausted

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Attempt budget and backoff schedule
        is_retryable: Decides whether a raised error is worth another attempt
        sleep: Awaitable used between attempts
        description: Label used in log lines

    Returns:
        Whatever the first successful attempt returned

    Raises:
        The last error, once it is non-retryable or attempts are exhausted
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e):
                logger.warning(f"{description} failed with non-retryable error on attempt {attempt}: {e}")
                raise
            if attempt >= policy.max_attempts:
                logger.error(f"{description} failed after {attempt} attempts: {e}")
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                f"{description} attempt {attempt}/{policy.max_attempts} failed: {e}. "
                f"Retrying in {delay:.2f}s"
            )
            await sleep(delay)
