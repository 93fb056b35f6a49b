"""
Retry logic with exponential backoff for handling transient failures.

Wraps any zero-argument operation that may fail due to network issues,
rate limiting, or temporary server errors. The error from the final attempt
is always the one surfaced to the caller.
"""

import socket
import time
from typing import Any, Callable, Optional, TypeVar

import requests
from pydantic import BaseModel, ConfigDict, Field

from .errors import ItemValidationError, TransportError

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """
    Immutable retry configuration.

    Delays are in seconds. The delay before attempt k (k >= 2) is
    min(initial_delay * backoff_multiplier ** (k - 2), max_delay).
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1, le=10)
    initial_delay: float = Field(default=1.0, gt=0)
    max_delay: float = Field(default=30.0, gt=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)

    def merged(self, **overrides: Any) -> "RetryPolicy":
        """Return a validated copy with non-None overrides applied."""
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return RetryPolicy(**values)


class RetryExecutor:
    """
    Runs operations with exponential backoff.

    Hooks:
        should_retry(exc) -> bool: overrides the default classification
        on_retry(attempt, exc, delay): called before sleeping
        on_success(attempt): called once with the successful attempt number
    """

    def __init__(self, policy: Optional[RetryPolicy] = None, sleep: Callable[[float], None] = time.sleep):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def execute(
        self,
        operation: Callable[[], T],
        policy: Optional[RetryPolicy] = None,
        *,
        should_retry: Optional[Callable[[BaseException], bool]] = None,
        on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
        on_success: Optional[Callable[[int], None]] = None,
        **overrides: Any,
    ) -> T:
        """
        Execute operation, retrying retryable failures.

        Args:
            operation: Zero-argument callable producing the result
            policy: Policy for this call (default: executor's policy)
            should_retry: Optional predicate taking precedence over
                is_retryable_error
            on_retry: Optional callback(attempt, exception, delay)
            on_success: Optional callback(attempt)
            **overrides: Per-call policy fields (max_attempts, initial_delay, ...)

        Returns:
            The operation's result

        Raises:
            The exception from the last attempt, unchanged
        """
        config = policy or self.policy
        if overrides:
            config = config.merged(**overrides)
        classify = should_retry or is_retryable_error
        delay = min(config.initial_delay, config.max_delay)
        attempt = 1

        while True:
            try:
                result = operation()
            except Exception as e:
                is_last_attempt = attempt >= config.max_attempts
                if is_last_attempt or not classify(e):
                    raise

                if on_retry:
                    on_retry(attempt, e, delay)

                self._sleep(delay)
                delay = min(delay * config.backoff_multiplier, config.max_delay)
                attempt += 1
                continue

            if on_success:
                on_success(attempt)
            return result


_TRANSIENT_KEYWORDS = (
    "timeout",
    "timed out",
    "connection refused",
    "econnrefused",
    "etimedout",
    "enotfound",
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
)

_TRANSPORT_TYPES = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    ConnectionError,
    TimeoutError,
    socket.gaierror,
)


def should_retry_http_status(status_code: int) -> bool:
    """
    Check if HTTP status code indicates a retryable error.

    Args:
        status_code: HTTP status code

    Returns:
        True for 5xx server errors and 429 rate limiting
    """
    return 500 <= status_code < 600 or status_code == 429


def _status_code_of(exception: BaseException) -> Optional[int]:
    status = getattr(exception, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exception, "response", None)
    if response is not None and isinstance(getattr(response, "status_code", None), int):
        return response.status_code
    return None


def is_transient_error(exception: BaseException) -> bool:
    """
    Determine if an exception's message looks like a transient network failure.

    Args:
        exception: Exception to check

    Returns:
        True if error mentions a timeout, refused connection, or DNS failure
    """
    error_str = str(exception).lower()
    return any(keyword in error_str for keyword in _TRANSIENT_KEYWORDS)


def is_retryable_error(exception: BaseException) -> bool:
    """
    Default retry classification.

    Retryable: transport-layer errors (connection refused/reset, timeouts,
    DNS failures), HTTP 5xx and 429. Validation errors and everything else
    are not.
    """
    if isinstance(exception, ItemValidationError):
        return False

    status = _status_code_of(exception)
    if status is not None:
        return should_retry_http_status(status)

    if isinstance(exception, _TRANSPORT_TYPES):
        return True

    if is_transient_error(exception):
        return True

    # TransportError wraps the requests exception; classify by its cause
    if isinstance(exception, TransportError) and exception.__cause__ is not None:
        return is_retryable_error(exception.__cause__)

    return False
