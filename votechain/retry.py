"""
Exponential backoff for the scoring oracle's HTTP request.

The oracle call may hit network blips, rate limiting or gateway errors while
the model is busy. Only that call is retried; the ledger committer reports
its failures on the receipt instead.
"""

import functools
import time
from typing import Callable, List, Optional, Tuple, Type

RETRYABLE_STATUS_CODES = frozenset({
    408,  # Request Timeout
    429,  # Too Many Requests
    500,
    502,
    503,
    504,
})

TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "connection",
    "temporary failure",
    "service unavailable",
    "bad gateway",
    "too many requests",
    "rate limit",
)


class RetryError(Exception):
    """All attempts failed. The last failure is chained as __cause__."""

    def __init__(self, attempts: int, last_error: Exception):
        super().__init__(f"Failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class RetryableStatusError(Exception):
    """An HTTP response whose status code is worth another attempt."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"HTTP {status_code}: {body[:200]}")
        self.status_code = status_code
        self.body = body


def backoff_delays(
    max_retries: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float = 2.0,
) -> List[float]:
    """Sleep before each retry, capped at max_delay."""
    return [min(base_delay * exponential_base ** i, max_delay) for i in range(max(max_retries, 0))]


def exponential_backoff(
    max_retries: int = 2,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator retrying a call on the given exception types.

    Args:
        max_retries: Retries after the first attempt (0 = single attempt)
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay
        exponential_base: Growth factor between delays
        exceptions: Exception types that trigger a retry; others propagate
        on_retry: Optional callback(attempt, exception, delay) before sleeping
        sleep: Sleep function, replaceable in tests

    Raises:
        RetryError: When every attempt raised one of `exceptions`

    Example:
        post = exponential_backoff(max_retries=2, exceptions=(requests.Timeout,))(session.post)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delays = backoff_delays(max_retries, base_delay, max_delay, exponential_base)
            attempt = 0
            while True:
                attempt += 1
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt > len(delays):
                        raise RetryError(attempt, e) from e
                    delay = delays[attempt - 1]
                    if on_retry:
                        on_retry(attempt, e, delay)
                    sleep(delay)

        return wrapper
    return decorator


def should_retry_http_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES


def is_transient_error(exception: Exception) -> bool:
    """
    Guess whether an error is likely to go away on its own.

    Retryable HTTP statuses count as transient; anything else is judged by
    its message (timeouts, dropped connections, rate limiting).
    """
    if isinstance(exception, RetryableStatusError):
        return should_retry_http_status(exception.status_code)
    if isinstance(exception, (TimeoutError, ConnectionError)):
        return True
    message = str(exception).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)
