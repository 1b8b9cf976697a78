"""Exponential backoff shared by embedding, vector search and generation calls."""

from __future__ import annotations

import asyncio
import random
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

import httpx
import openai
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from .config import config

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = config.get_logger(__name__)

T = TypeVar("T")

RETRYABLE_PATTERN = re.compile(
    r"429|RESOURCE_EXHAUSTED|UNAVAILABLE|DEADLINE|INTERNAL|ECONNRESET|ETIMEDOUT",
    re.IGNORECASE,
)

RETRYABLE_TYPES: tuple[type[BaseException], ...] = (
    openai.RateLimitError,
    openai.APIConnectionError,  # includes APITimeoutError
    openai.InternalServerError,
    httpx.TimeoutException,
    httpx.NetworkError,
    ConnectionResetError,
    TimeoutError,
)


def is_retryable_error(exc: BaseException) -> bool:
    """Decide whether an upstream failure is worth retrying.

    Rate limits, unavailable or overloaded upstreams, deadlines and dropped
    connections are retried; anything else (bad request, auth) is not.

    Returns:
        True if the call should be attempted again.
    """
    if isinstance(exc, RETRYABLE_TYPES):
        return True
    return bool(RETRYABLE_PATTERN.search(str(exc)))


@dataclass
class RetryPolicy:
    """Retry with exponential backoff and jitter for retryable errors only."""

    max_retries: int = 4
    base_delay: float = 0.4
    max_delay: float = 2.0
    jitter: float = 0.2
    is_retryable: Callable[[BaseException], bool] = is_retryable_error
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    rng: random.Random = field(default_factory=random.Random)

    @classmethod
    def from_config(cls) -> RetryPolicy:
        """Build the policy from environment configuration.

        Returns:
            RetryPolicy using the RETRY_* settings.
        """
        return cls(
            max_retries=config.RETRY_MAX_RETRIES,
            base_delay=config.RETRY_BASE_DELAY,
            max_delay=config.RETRY_MAX_DELAY,
            jitter=config.RETRY_JITTER,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (0-based).

        Returns:
            Seconds to wait: capped exponential delay plus random jitter.
        """
        backoff = min(self.max_delay, self.base_delay * 2**attempt)
        return backoff + self.rng.uniform(0, self.jitter)

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.delay_for(retry_state.attempt_number - 1)

    def _before_sleep(self, label: str) -> Callable[[RetryCallState], None]:
        def log_retry(retry_state: RetryCallState) -> None:
            outcome = retry_state.outcome
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                label,
                retry_state.attempt_number,
                self.max_retries,
                retry_state.next_action.sleep if retry_state.next_action else 0.0,
                outcome.exception() if outcome else None,
            )

        return log_retry

    async def run(self, fn: Callable[[], Awaitable[T]], *, label: str = "call") -> T:
        """Await ``fn()``, retrying retryable failures up to ``max_retries`` times.

        Returns:
            Whatever ``fn`` returns.

        Raises:
            Exception: The last error once retries are exhausted, or the first
                non-retryable error.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._wait,
            retry=retry_if_exception(self.is_retryable),
            before_sleep=self._before_sleep(label),
            sleep=self.sleep,
            reraise=True,
        )
        return await retrying(fn)
