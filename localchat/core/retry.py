"""Retry logic for calls to the networked store."""

import logging
from typing import Any, Callable, TypeVar

from httpx import ConnectError, HTTPStatusError, NetworkError, TimeoutException
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# Transient errors that should be retried
RETRYABLE_EXCEPTIONS = (
    TimeoutException,
    ConnectError,
    NetworkError,
)


def is_retryable_http_error(exception: BaseException) -> bool:
    """Check if HTTP error is retryable (5xx or specific 4xx errors)."""
    if isinstance(exception, HTTPStatusError):
        status_code = exception.response.status_code
        if 500 <= status_code < 600:
            return True
        # Request Timeout, Too Many Requests
        return status_code in (408, 429)
    return isinstance(exception, RETRYABLE_EXCEPTIONS)


def _log_retry(retry_state: Any) -> None:
    logger.warning(
        f"Retrying {retry_state.fn.__name__} after {retry_state.outcome.exception()}"
        f" (attempt {retry_state.attempt_number})"
    )


def retry_with_backoff(
    max_attempts: int = 3,
    min_wait: float = 0.5,
    max_wait: float = 5,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator to retry an idempotent call with exponential backoff.

    Only transient failures (timeouts, connection errors, 5xx, 408, 429)
    are retried; everything else is raised on the first attempt.

    Args:
        max_attempts: Maximum number of attempts
        min_wait: Minimum wait time in seconds
        max_wait: Maximum wait time in seconds
    """
    return retry(
        retry=retry_if_exception(is_retryable_http_error),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=min_wait or 1, min=min_wait, max=max_wait),
        reraise=True,
        before_sleep=_log_retry,
    )
