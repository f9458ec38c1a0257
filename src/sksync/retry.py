"""Bounded exponential-backoff retries and deadlines for async operations.

Only transient failures are retried: dropped or refused connections,
timeouts, rate limiting (429) and gateway errors (502/503/504).
Validation errors, auth failures and other 4xx responses fail at once.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
from pydantic import BaseModel, Field

from .errors import SyncError, SyncTimeoutError

logger = logging.getLogger("sksync.retry")

T = TypeVar("T")

DEFAULT_TIMEOUT_S = 30.0

_RETRYABLE_TOKENS = (
    "ECONNRESET",
    "ETIMEDOUT",
    "EHOSTUNREACH",
    "ECONNREFUSED",
    "socket hang up",
    "connection reset",
    "connection refused",
    "unreachable",
    "timed out",
)
_RETRYABLE_STATUS_RE = re.compile(r"\b(429|502|503|504)\b")


class RetryPolicy(BaseModel):
    """How many times to try, and how long to wait in between."""

    max_retries: int = Field(default=3, ge=1, description="Total attempts, including the first")
    initial_backoff: float = Field(default=1.0, ge=0, description="Seconds before the 2nd attempt")
    max_backoff: float = Field(default=10.0, ge=0, description="Upper bound on any single wait")
    backoff_multiplier: float = Field(default=2.0, ge=1)

    def backoff_for(self, attempt: int) -> float:
        """Delay after failed attempt ``attempt`` (1-indexed)."""
        delay = self.initial_backoff * self.backoff_multiplier ** (attempt - 1)
        return min(delay, self.max_backoff)


def is_retryable_error(exc: BaseException) -> bool:
    """Default classifier: is this failure worth another attempt?"""
    if isinstance(exc, SyncError):
        return exc.retryable
    if isinstance(exc, (TimeoutError, ConnectionError, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in (429, 502, 503, 504)
    return is_transient_message(str(exc))


def is_transient_message(message: str) -> bool:
    """Does an error message describe a network hiccup or a retryable status?"""
    lowered = message.lower()
    if any(token.lower() in lowered for token in _RETRYABLE_TOKENS):
        return True
    return bool(_RETRYABLE_STATUS_RE.search(message))


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    operation_name: str = "operation",
    policy: Optional[RetryPolicy] = None,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
) -> T:
    """Run an async operation, retrying transient failures.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt.
        operation_name: Used in log lines.
        policy: Attempt count and backoff settings.
        is_retryable: Classifier deciding whether a failure is transient.

    Returns:
        Whatever the operation returns on its first successful attempt.

    Raises:
        The operation's own exception, unchanged, once it is non-retryable
        or the last attempt has failed.
    """
    policy = policy or RetryPolicy()
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= policy.max_retries or not is_retryable(exc):
                raise
            delay = policy.backoff_for(attempt)
            logger.info(
                "Retry attempt %d/%d for %s after %s. Waiting %.1fs...",
                attempt, policy.max_retries, operation_name, exc, delay,
            )
            await asyncio.sleep(delay)
            attempt += 1


async def with_timeout(awaitable: Awaitable[T], timeout: float = DEFAULT_TIMEOUT_S) -> T:
    """Await with a deadline.

    Raises:
        SyncTimeoutError: If the deadline passes first.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as exc:
        raise SyncTimeoutError(
            f"Operation timeout after {timeout:g}s", {"timeout_s": timeout}
        ) from exc


async def with_retry_and_timeout(
    operation: Callable[[], Awaitable[T]],
    operation_name: str = "operation",
    policy: Optional[RetryPolicy] = None,
    timeout: float = DEFAULT_TIMEOUT_S,
) -> T:
    """Retry an operation where every attempt has its own deadline."""
    return await with_retry(
        lambda: with_timeout(operation(), timeout), operation_name, policy
    )
