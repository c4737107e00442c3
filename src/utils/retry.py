"""
Retry with exponential backoff for transient database failures.

Only idempotent, self-contained calls may be wrapped: the staging fetch,
row counts and acquiring a connection for a new transaction. Statements
issued inside an open transaction are never retried here; a failure there
rolls back the whole chunk instead.

Usage:
    from utils.retry import retry_database_operation

    @retry_database_operation(max_retries=3, base_delay=0.5)
    def fetch_all(self):
        ...
"""

import logging
import random
import time
from functools import wraps
from typing import Any, Callable

import psycopg2
from psycopg2 import errorcodes

logger = logging.getLogger(__name__)

# SQLSTATEs PostgreSQL uses for conflicts that succeed on a later attempt
RETRYABLE_PGCODES = frozenset({
    errorcodes.SERIALIZATION_FAILURE,
    errorcodes.DEADLOCK_DETECTED,
    errorcodes.LOCK_NOT_AVAILABLE,
    errorcodes.ADMIN_SHUTDOWN,
    errorcodes.CANNOT_CONNECT_NOW,
    errorcodes.CONNECTION_FAILURE,
    errorcodes.CONNECTION_EXCEPTION,
})

RETRYABLE_MESSAGE_PATTERNS = (
    "connection refused",
    "connection reset",
    "connection timed out",
    "could not connect",
    "server closed the connection",
    "terminating connection",
    "broken pipe",
    "timeout expired",
    "ssl syscall error",
)


def compute_backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """
    Delay before retry number ``attempt`` (zero based).

    With jitter the delay is spread by +/-25% and never drops below 0.1s.
    """
    delay = min(base_delay * (exponential_base ** attempt), max_delay)
    if jitter:
        spread = delay * 0.25
        delay = max(0.1, delay + random.uniform(-spread, spread))
    return delay


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: tuple[type[Exception], ...] | None = None,
    should_retry: Callable[[Exception], bool] | None = None,
    on_retry: Callable[[int, Exception, float], None] | None = None,
):
    """
    Decorator that retries a function with exponential backoff.

    Args:
        max_retries: Retry attempts after the first call
        base_delay: Initial delay in seconds
        max_delay: Upper bound for a single delay in seconds
        exponential_base: Growth factor between attempts
        jitter: Randomise delays by +/-25%
        retryable_exceptions: Exception types worth retrying (default: all)
        should_retry: Extra predicate; returning False fails immediately
        on_retry: Callback(attempt, exception, delay) before each sleep

    Returns:
        Decorated function with retry logic
    """
    def decorator(func: Callable) -> Callable:
        func_name = getattr(func, "__name__", "function")

        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    retryable = (
                        retryable_exceptions is None
                        or isinstance(e, retryable_exceptions)
                    ) and (should_retry is None or should_retry(e))

                    if not retryable:
                        logger.debug(
                            f"Non-retryable error in {func_name}: {type(e).__name__}: {e}"
                        )
                        raise

                    if attempt == max_retries:
                        logger.error(
                            f"Max retries ({max_retries}) exceeded for {func_name}: "
                            f"{type(e).__name__}: {e}"
                        )
                        raise

                    delay = compute_backoff_delay(
                        attempt, base_delay, max_delay, exponential_base, jitter
                    )
                    logger.warning(
                        f"Attempt {attempt + 1}/{max_retries + 1} failed for {func_name}: "
                        f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s"
                    )

                    if on_retry:
                        try:
                            on_retry(attempt + 1, e, delay)
                        except Exception as callback_error:
                            logger.error(f"Error in retry callback: {callback_error}")

                    time.sleep(delay)

            raise RuntimeError(f"Unreachable retry state in {func_name}")

        return wrapper
    return decorator


def is_retryable_db_exception(exception: Exception) -> bool:
    """
    Decide whether a database error is transient.

    Connection level failures (``OperationalError``, ``InterfaceError``)
    and the serialization/deadlock SQLSTATEs are transient. Constraint
    violations, syntax errors and data errors are not.

    Args:
        exception: The exception raised by the driver

    Returns:
        True if retrying the same call may succeed
    """
    pgcode = getattr(exception, "pgcode", None)
    if pgcode:
        return pgcode in RETRYABLE_PGCODES

    if isinstance(exception, (psycopg2.OperationalError, psycopg2.InterfaceError)):
        return True

    if isinstance(exception, (ConnectionError, TimeoutError)):
        return True

    message = str(exception).lower()
    return any(pattern in message for pattern in RETRYABLE_MESSAGE_PATTERNS)


def retry_database_operation(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    on_retry: Callable[[int, Exception, float], None] | None = None,
):
    """
    ``retry_with_backoff`` restricted to transient PostgreSQL errors.

    Example:
        @retry_database_operation(max_retries=5)
        def count_pending(self):
            ...
    """
    return retry_with_backoff(
        max_retries=max_retries,
        base_delay=base_delay,
        max_delay=max_delay,
        should_retry=is_retryable_db_exception,
        on_retry=on_retry,
    )
