"""Retry policy for posts that fail before the appliance answers."""
import logging
from functools import wraps
from typing import Awaitable, Callable, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Raised before any response arrived. HTTP status errors are not listed:
# the appliance answered and the body is classified instead.
RETRYABLE_EXCEPTIONS = (
    ConnectionRefusedError,
    ConnectionResetError,
    TimeoutError,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
    httpx.TimeoutException,
)


def _log_retry(state: RetryCallState) -> None:
    error = state.outcome.exception() if state.outcome else None
    delay = state.next_action.sleep if state.next_action else 0
    logger.warning(
        f"Attempt {state.attempt_number} failed ({type(error).__name__}: {error}), "
        f"retrying in {delay:.1f}s"
    )


def retry_policy(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
) -> AsyncRetrying:
    """Build the tenacity controller used for one post.

    Args:
        max_attempts: Attempts including the first one
        min_wait: Shortest backoff between attempts (seconds)
        max_wait: Longest backoff between attempts (seconds)
        exceptions: Exception types that trigger another attempt

    Returns:
        An AsyncRetrying that re-raises the last exception when exhausted
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=_log_retry,
        reraise=True,
    )


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorate a coroutine function so connection failures are retried.

    A fresh controller is built per call, so attempt counts never leak
    between posts.
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            policy = retry_policy(max_attempts, min_wait, max_wait, exceptions)
            return await policy(func, *args, **kwargs)

        return wrapper

    return decorator
