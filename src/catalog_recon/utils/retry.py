"""
Retry with exponential backoff for Oracle connectivity.

Errors are classified by their ORA-/DPY- code: listener, network and
session-loss codes are retried, authentication codes never are, and
anything else (SQL errors included) fails on the first attempt.

Usage:
    from catalog_recon.utils.retry import retry_database_operation

    @retry_database_operation(max_retries=2, base_delay=0.5)
    def connect():
        return oracledb.connect(user=..., password=..., dsn=...)
"""

import logging
import random
import re
import time
from functools import wraps
from typing import Any, Callable, Optional

import oracledb

logger = logging.getLogger(__name__)

# Transient: the database or the path to it was briefly unavailable
RETRYABLE_CODES = frozenset({
    "ORA-03113",  # end-of-file on communication channel
    "ORA-03114",  # not connected to oracle
    "ORA-03135",  # connection lost contact
    "ORA-12170",  # connect timeout occurred
    "ORA-12514",  # listener does not currently know of service
    "ORA-12528",  # listener: all instances are blocking new connections
    "ORA-12537",  # connection closed
    "ORA-12541",  # no listener
    "DPY-4011",   # database or network closed the connection
    "DPY-6005",   # cannot connect to database
})

# Never heal on retry
FATAL_CODES = frozenset({
    "ORA-01017",  # invalid username/password
    "ORA-28000",  # account locked
    "ORA-01045",  # lacks CREATE SESSION privilege
})

# Driver-less transient failures, matched against the lower-cased message
RETRYABLE_MESSAGES = ("connection reset", "connection refused", "timed out", "broken pipe")

_CODE_PATTERN = re.compile(r"\b(ORA|DPY)-\d{4,5}\b", re.IGNORECASE)


def error_code(exception: Exception) -> str | None:
    """ORA-/DPY- code of an exception, from the driver error object or the message."""
    if isinstance(exception, oracledb.Error) and exception.args:
        code = getattr(exception.args[0], "full_code", None)
        if code:
            return code.upper()
    match = _CODE_PATTERN.search(str(exception))
    return match.group(0).upper() if match else None


def is_retryable_db_exception(exception: Exception) -> bool:
    """
    Whether retrying the operation that raised ``exception`` can succeed.

    Args:
        exception: The exception to check

    Returns:
        True for transient connectivity failures
    """
    code = error_code(exception)
    if code in FATAL_CODES:
        return False
    if code in RETRYABLE_CODES:
        return True
    if code is not None:
        return False

    if isinstance(exception, (ConnectionError, TimeoutError)):
        return True
    message = str(exception).lower()
    return any(fragment in message for fragment in RETRYABLE_MESSAGES)


def retry_database_operation(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None
):
    """
    Retry the decorated call on transient database errors.

    Delays double from ``base_delay`` up to ``max_delay``, with +/-25% jitter.

    Args:
        max_retries: Retries after the first attempt
        base_delay: First delay in seconds
        max_delay: Upper bound of a single delay before jitter
        on_retry: Called with (attempt, exception, delay) before each sleep;
            its own failures are logged and ignored
    """
    def decorator(func: Callable) -> Callable:
        name = getattr(func, "__name__", "operation")

        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not is_retryable_db_exception(e):
                        logger.error(f"{name} failed with a non-retryable error: {type(e).__name__}: {e}")
                        raise
                    if attempt >= max_retries:
                        logger.error(f"{name} failed after {max_retries} retries: {type(e).__name__}: {e}")
                        raise

                    attempt += 1
                    delay = min(base_delay * 2 ** (attempt - 1), max_delay)
                    delay = max(0.0, delay + random.uniform(-0.25, 0.25) * delay)
                    logger.warning(
                        f"{name} failed ({type(e).__name__}: {e}); "
                        f"retry {attempt}/{max_retries} in {delay:.2f}s"
                    )

                    if on_retry is not None:
                        try:
                            on_retry(attempt, e, delay)
                        except Exception as callback_error:
                            logger.error(f"Retry callback failed: {callback_error}")

                    time.sleep(delay)

        return wrapper
    return decorator
