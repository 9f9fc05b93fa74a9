"""
Retry utilities with exponential backoff for transient API errors.

Google APIs fail temporarily on rate limiting (HTTP 429), overloaded
backends (HTTP 5xx) and dropped connections. These calls are retried a few
times with exponentially growing, jittered delays before the error is
handed back to the caller.

This is per-call resilience only. A call that still fails surfaces as a
RemoteCallError and the workflows decide what to do with it (persist a
retry entry, count and skip, abort the pass).

USAGE:
------
    from utils.retry import retry_on_transient_error

    @retry_on_transient_error(is_retryable=is_retryable, max_retries=5)
    def call_my_api():
        return api.do_something()
"""

import logging
import random
import time
from functools import wraps
from typing import Callable, Optional

from utils.deadline import Deadline

logger = logging.getLogger(__name__)


def retry_on_transient_error(
    is_retryable: Callable[[Exception], bool],
    max_retries: int = 5,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    on_retry: Optional[Callable[[Exception, int, float], None]] = None,
    deadline: Optional[Deadline] = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator that retries a function on transient errors with exponential backoff.

    Args:
        is_retryable: Takes an exception and returns True if it is transient.
        max_retries: Retry attempts after the initial try (total = max_retries + 1).
        base_delay: Delay before the first retry, doubled for each later one.
        max_delay: Upper bound for a single delay, before jitter.
        on_retry: Called as on_retry(exc, attempt, delay) before sleeping.
        deadline: If given, no retry is scheduled once the next delay would
                  run past it; the last error is raised instead.
        sleep: Sleep function (replaced in tests).

    Raises:
        The last exception if all retries are exhausted, or immediately if
        the exception is not retryable.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)

                except Exception as exc:
                    if not is_retryable(exc):
                        raise

                    last_exception = exc

                    if attempt < max_retries:
                        delay = min(base_delay * (2 ** attempt), max_delay)
                        # Jitter between 0.5x and 1.5x
                        delay *= 0.5 + random.random()

                        if deadline is not None and deadline.remaining() <= delay:
                            logger.debug("deadline too close, not retrying after %s", type(exc).__name__)
                            break

                        if on_retry:
                            on_retry(exc, attempt + 1, delay)

                        sleep(delay)

            raise last_exception

        return wrapper
    return decorator


# Standard HTTP status codes that indicate transient server issues
TRANSIENT_HTTP_STATUS_CODES = {
    429,  # Too Many Requests (rate limited)
    500,  # Internal Server Error
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
}

# Standard network exception types that are typically transient
TRANSIENT_NETWORK_EXCEPTIONS = (
    ConnectionError,      # Connection refused, reset, etc.
    TimeoutError,         # Operation timed out
    OSError,              # Low-level I/O errors (includes socket errors)
)


def is_transient_network_error(exc: Exception) -> bool:
    """Check if an exception is a transient network error."""
    return isinstance(exc, TRANSIENT_NETWORK_EXCEPTIONS)
