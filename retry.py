"""Retry decorator using tenacity for transient network errors on GitHub reads."""
import logging

import requests
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
    before_sleep_log,
)

from errors import SyncError


def is_transient_error(exception: Exception) -> bool:
    """
    Check if an exception is a transient error that should be retried.
    Handles connection resets, aborted connections, timeouts, etc.
    Errors raised by this project are never transient.
    """
    if isinstance(exception, SyncError):
        return False

    transient_types = (
        ConnectionResetError,
        ConnectionError,
        TimeoutError,
        requests.exceptions.ConnectionError,
        requests.exceptions.Timeout,
    )

    if isinstance(exception, transient_types):
        return True

    error_msg = str(exception).lower()
    transient_indicators = (
        "connection aborted",
        "connection reset",
        "remote end closed connection",
        "timed out",
        "temporary failure",
    )
    return any(indicator in error_msg for indicator in transient_indicators)


# Only for idempotent reads; mutations must not be repeated
retry_transient = retry(
    retry=retry_if_exception(is_transient_error),
    stop=stop_after_attempt(4),
    wait=wait_exponential(multiplier=2, min=2, max=30),
    before_sleep=before_sleep_log(logging.getLogger(__name__), logging.WARNING),
    reraise=True,
)
