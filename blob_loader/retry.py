"""Retry logic with exponential backoff for transient failures.

This module provides two loops:

retry_with_backoff: re-run an operation that failed for a transient reason
(connection errors, 429, 5xx, BlobOpError of kind TRANSIENT). Permanent
failures are raised immediately.

poll_until_found: re-run a read while it raises NotFound. Used to wait for
blobs written with a non-commit broadcast mode to become visible. Gives up
with NotFoundOnPoll after a fixed attempt budget.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional, Sequence, TypeVar

import httpx

from blob_loader.errors import BlobOpError, FailureKind, NotFound, NotFoundOnPoll

logger = logging.getLogger(__name__)

T = TypeVar("T")

# HTTP status codes that indicate transient server issues
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

# Upper bound for a single poll delay
MAX_POLL_DELAY = 30.0


class RetryExhausted(Exception):
    """Raised when all retry attempts have been exhausted."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


def is_retryable_error(error: Exception) -> bool:
    """Determine if an error is transient and worth retrying.

    Args:
        error: The exception that was raised.

    Returns:
        True if the error is transient and should trigger a retry,
        False if the error is permanent and retrying won't help.
    """
    # Network-level errors are transient
    if isinstance(error, (httpx.ConnectError, httpx.ConnectTimeout, httpx.ReadTimeout)):
        return True

    # HTTP status errors need case-by-case handling
    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        return status_code in RETRYABLE_STATUS_CODES

    if isinstance(error, BlobOpError):
        return error.kind == FailureKind.TRANSIENT

    return False


def retry_with_backoff(
    func: Callable[..., Any],
    max_attempts: int = 3,
    delays: Sequence[float] = (1.0, 3.0, 10.0),
    args: tuple = (),
    kwargs: Optional[dict] = None,
) -> Any:
    """Execute a function with retry logic and exponential backoff.

    Args:
        func: The function to execute.
        max_attempts: Maximum number of attempts (including first try).
        delays: Sequence of delay times (seconds) between retries.
                delays[0] is used after first failure, etc.
        args: Positional arguments to pass to func.
        kwargs: Keyword arguments to pass to func.

    Returns:
        The return value of func if successful.

    Raises:
        RetryExhausted: If all attempts fail with retryable errors.
        Exception: If a non-retryable error occurs, it's raised immediately.
    """
    if kwargs is None:
        kwargs = {}

    last_error: Optional[Exception] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            last_error = e

            if not is_retryable_error(e):
                raise

            if attempt >= max_attempts:
                raise RetryExhausted(
                    f"Operation failed after {max_attempts} attempts",
                    attempts=max_attempts,
                    last_error=last_error,
                ) from last_error

            delay_index = min(attempt - 1, len(delays) - 1)
            delay = delays[delay_index]
            logger.debug("retrying after %s (attempt %d, sleeping %.1fs)", e, attempt, delay)
            time.sleep(delay)

    raise RetryExhausted(
        f"Operation failed after {max_attempts} attempts",
        attempts=max_attempts,
        last_error=last_error,
    )


def poll_delay(attempt: int, interval: float, max_delay: float = MAX_POLL_DELAY) -> float:
    """Delay before poll attempt ``attempt + 1``: interval doubled per attempt, capped."""
    return min(interval * (2 ** (attempt - 1)), max_delay)


def poll_until_found(
    func: Callable[[], T],
    attempts: int,
    interval: float,
    key: Optional[str] = None,
    stop: Optional[threading.Event] = None,
) -> T:
    """Call ``func`` until it stops raising NotFound.

    Args:
        func: Read to attempt, raising NotFound while the blob is invisible
        attempts: Attempt budget, including the first call
        interval: First delay in seconds, doubled after every miss
        key: Key being polled, for error messages
        stop: Shutdown event; a set event ends the wait early

    Returns:
        Whatever ``func`` returned on the first successful attempt.

    Raises:
        NotFoundOnPoll: The budget ran out
        BlobOpError: Of kind CANCELLED when shutdown was requested mid-wait
        BlobOpError: Any failure other than NotFound, raised immediately
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except NotFound:
            if attempt >= attempts:
                break
            delay = poll_delay(attempt, interval)
            logger.debug("still waiting for %s to resolve (attempt %d/%d)", key, attempt, attempts)
            if stop is not None:
                if stop.wait(delay):
                    raise BlobOpError(
                        f"polling for {key} cancelled", kind=FailureKind.CANCELLED, key=key
                    )
            else:
                time.sleep(delay)

    raise NotFoundOnPoll(
        f"{key} not visible after {attempts} attempts",
        key=key,
        attempts=attempts,
    )
