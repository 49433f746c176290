"""
Exponential backoff retry logic for settlement provider calls.

Transient failures (network errors, 429 rate limits, 5xx) are retriable;
permanent failures (4xx client errors) are not. The RetryPolicy is an explicit
parameter so callers bound their request volume on persistent upstream
failure: the poller uses it to reschedule, and idempotent catalog reads use
with_retry directly. Order creation is never retried.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from app.config import settings

logger = logging.getLogger("offramp.retry")

RETRIABLE_STATUS_CODES = {429, 502, 503, 504}


class ProviderError(Exception):
    """Base exception for settlement provider errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        retriable: bool = True,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retriable = retriable
        self.body = body


class RateLimitError(ProviderError):
    """429 Too Many Requests from the settlement provider."""

    def __init__(self, message: str = "Rate limited", retry_after: float | None = None):
        super().__init__(message, status_code=429, retriable=True)
        self.retry_after = retry_after


class PermanentError(ProviderError):
    """Non-retriable error (e.g. invalid account, bad request)."""

    def __init__(self, message: str, status_code: int = 400, body: Optional[str] = None):
        super().__init__(message, status_code=status_code, retriable=False, body=body)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff."""

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
        )

    def delay_for(self, failures: int) -> float:
        """Delay before the next attempt after `failures` consecutive failures."""
        if failures <= 0:
            return 0.0
        return min(self.base_delay * (2 ** (failures - 1)), self.max_delay)


async def with_retry(
    func: Callable[..., Any],
    *args: Any,
    policy: Optional[RetryPolicy] = None,
    **kwargs: Any,
) -> Any:
    """
    Execute an async function with exponential backoff on retriable errors.

    Args:
        func: Async callable to execute.
        policy: Attempt and delay bounds; defaults to the configured policy.

    Returns:
        The result of the function call.

    Raises:
        ProviderError: On permanent failure or exhausted attempts.
    """
    policy = policy or RetryPolicy.from_settings()
    attempts = max(policy.max_attempts, 1)
    last_error = None

    for attempt in range(1, attempts + 1):
        try:
            return await func(*args, **kwargs)
        except ProviderError as e:
            last_error = e
            if not e.retriable:
                raise

            if attempt < attempts:
                sleep_for = policy.delay_for(attempt)
                if isinstance(e, RateLimitError) and e.retry_after:
                    sleep_for = min(e.retry_after, policy.max_delay)

                logger.warning(
                    "Retriable error on attempt %d/%d: %s - sleeping %.1fs",
                    attempt,
                    attempts,
                    e,
                    sleep_for,
                )
                await asyncio.sleep(sleep_for)
            else:
                logger.error("Exhausted %d attempts for provider call: %s", attempts, e)
                raise

    raise last_error or ProviderError("Unknown error after retries")
