"""Bounded exponential backoff for async operations."""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
from sqlalchemy.exc import DBAPIError, OperationalError

from aportes.core.exceptions import APIClientError, TransientError
from aportes.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_MESSAGES = (
    "timeout",
    "timed out",
    "network",
    "econnreset",
    "econnrefused",
    "econnaborted",
    "eai_again",
    "ehostunreach",
    "enotfound",
    "etimedout",
    "esockettimedout",
    "connection reset",
    "connection refused",
    "deadlock detected",
    "could not obtain lock",
)


def is_retryable_error(error: BaseException) -> bool:
    """Decide whether an error is a transient failure worth retrying.

    Rate limits, 5xx replies, timeouts, dropped connections and lock
    contention are transient. Schema violations, business-rule breaches and
    missing records are not.
    """
    if isinstance(error, TransientError):
        return True
    if isinstance(error, APIClientError):
        return error.retryable
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(error, OperationalError):
        return True
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True

    message = str(error).lower()
    return any(token in message for token in RETRYABLE_MESSAGES)


def compute_delay(
    attempt: int,
    initial_delay: float,
    max_delay: float,
    backoff_factor: float,
    jitter: float = 0.0,
) -> float:
    """Delay before retry number ``attempt + 1`` (attempt is zero-based)."""
    delay = min(initial_delay * (backoff_factor ** attempt), max_delay)
    if jitter:
        delay += random.uniform(0, delay * jitter)
    return delay


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    should_retry: Callable[[BaseException], bool] = lambda error: True,
    jitter: float = 0.0,
    operation_name: Optional[str] = None,
) -> T:
    """Run ``operation`` until it succeeds or retries are exhausted.

    The operation runs at most ``max_retries + 1`` times. Between attempts
    the delay grows geometrically and is capped at ``max_delay``.

    Args:
        operation: Zero-argument coroutine factory
        max_retries: Retries after the first attempt
        initial_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay, in seconds
        backoff_factor: Multiplier applied per attempt
        should_retry: Predicate deciding whether an error is retryable
        jitter: Extra random fraction of the delay to add (0 disables)
        operation_name: Label used in log messages

    Returns:
        The operation result

    Raises:
        Exception: The last error raised by the operation, unchanged
    """
    name = operation_name or getattr(operation, "__name__", "operation")
    attempt = 0

    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_retries or not should_retry(e):
                if attempt:
                    LOGGER.warning(
                        f"{name} failed after {attempt + 1} attempts",
                        extra={"operation": name, "error": str(e)},
                    )
                raise

            delay = compute_delay(attempt, initial_delay, max_delay, backoff_factor, jitter)
            attempt += 1
            LOGGER.info(
                f"Retrying {name} (attempt {attempt}/{max_retries}) in {delay:.2f}s",
                extra={"operation": name, "error": str(e), "delay": delay},
            )
            await asyncio.sleep(delay)
