"""Timed request execution with exponential backoff.

This module provides:
- RetryPolicy: attempt count and base delay for one class of call
- RequestExecutor: runs one outbound call with a per-attempt timeout,
  retrying only failures classified as transient
- is_retryable / status_of: failure classification helpers
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx

from vaultsync.client.errors import APIError, RenewalExpiredError, RequestTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 30.0  # seconds, per attempt

# Statuses worth another attempt; every other 4xx fails fast
RETRYABLE_STATUSES = frozenset({408, 429})


@dataclass(frozen=True)
class RetryPolicy:
    """How hard to try before giving up.

    Attributes:
        max_attempts: Total attempts, including the first one.
        base_delay: Delay before the first retry; doubles on each retry.
    """

    max_attempts: int
    base_delay: float

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given 0-based attempt."""
        return self.base_delay * (2**attempt)


# Ordinary calls
SHORT_POLICY = RetryPolicy(max_attempts=2, base_delay=1.0)

# Credential renewal: 20 + 40 + 80 + 160 = 300s of waiting
RENEWAL_POLICY = RetryPolicy(max_attempts=5, base_delay=20.0)


def status_of(exc: BaseException) -> int | None:
    """Extract an HTTP status from an exception, if it carries one."""
    if isinstance(exc, APIError):
        return exc.status_code
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return None


def is_retryable(exc: BaseException) -> bool:
    """Classify a failure as transient (retry) or terminal (fail fast).

    408, 429 and 5xx are transient. Any other 4xx is terminal. A failure
    without a status (network, transport, timeout) is transient.
    """
    if isinstance(exc, RenewalExpiredError):
        return False
    status = status_of(exc)
    if status is None:
        return True
    return status in RETRYABLE_STATUSES or status >= 500


class RequestExecutor:
    """Runs outbound calls with a timeout and exponential backoff."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the executor.

        Args:
            timeout: Seconds allowed for each attempt.
            sleep: Coroutine used to wait between attempts (injectable for tests).
        """
        self._timeout = timeout
        self._sleep = sleep

    @property
    def timeout(self) -> float:
        return self._timeout

    async def _attempt(self, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(call(), timeout=self._timeout)
        except TimeoutError as e:
            raise RequestTimeoutError(
                f"Request timed out after {self._timeout:.0f}s"
            ) from e

    async def execute(
        self,
        call: Callable[[], Awaitable[T]],
        policy: RetryPolicy = SHORT_POLICY,
    ) -> T:
        """Execute a call, retrying transient failures.

        Args:
            call: Zero-argument coroutine factory; invoked once per attempt.
            policy: Retry policy to apply.

        Returns:
            Result of the call.

        Raises:
            The last exception, unchanged, once attempts are exhausted or
            as soon as a terminal failure is seen.
        """
        for attempt in range(policy.max_attempts):
            try:
                return await self._attempt(call)
            except Exception as e:
                if not is_retryable(e):
                    raise
                if attempt + 1 >= policy.max_attempts:
                    logger.error(f"All {policy.max_attempts} attempts failed: {e}")
                    raise

                delay = policy.delay_for(attempt)
                logger.warning(
                    f"Attempt {attempt + 1}/{policy.max_attempts} failed: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                await self._sleep(delay)

        # max_attempts < 1
        raise ValueError("RetryPolicy.max_attempts must be at least 1")
