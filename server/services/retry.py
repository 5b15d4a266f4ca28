"""Bounded retry with exponential backoff for provider calls."""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from core.config import Settings
from core.exceptions import ProviderError
from core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RetryPolicy:
    """Retry configuration for a provider call.

    max_attempts counts retries after the first try, so 0 means "try once".
    Delay formula: min(initial_delay * (backoff_multiplier ^ attempt), max_delay)
    """
    max_attempts: int = 2
    initial_delay: float = 1.0       # seconds
    max_delay: float = 20.0          # seconds
    backoff_multiplier: float = 2.0
    retry_on_timeout: bool = True
    retry_on_connection_error: bool = True
    retry_on_server_error: bool = True  # 5xx and 429

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(max_attempts=settings.ai_max_retries, initial_delay=settings.ai_retry_delay)

    def calculate_delay(self, attempt: int) -> float:
        """Delay in seconds before retry number attempt (0-indexed)."""
        delay = self.initial_delay * (self.backoff_multiplier ** attempt)
        return min(delay, self.max_delay)

    def should_retry(self, error: ProviderError, attempt: int) -> bool:
        if attempt >= self.max_attempts or not error.retryable:
            return False
        if error.kind == "timeout":
            return self.retry_on_timeout
        if error.kind == "network":
            return self.retry_on_connection_error
        return self.retry_on_server_error


async def call_with_retry(policy: RetryPolicy, operation: str,
                          call: Callable[[], Awaitable[Any]],
                          sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> Any:
    """Run call, retrying transient ProviderErrors according to policy.

    Non-provider exceptions and non-retryable provider errors propagate
    immediately.
    """
    attempt = 0
    while True:
        try:
            return await call()
        except ProviderError as e:
            if not policy.should_retry(e, attempt):
                raise
            delay = policy.calculate_delay(attempt)
            logger.info("Retrying provider call", operation=operation, attempt=attempt + 1,
                        delay_seconds=delay, error=str(e))
            attempt += 1
            await sleep(delay)
