"""Exponential backoff with jitter for provider API calls."""

from __future__ import annotations

import logging
import os
import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from ..exceptions import RetryExhaustedError

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
TERMINAL_STATUS_CODES = frozenset({400, 401, 403, 404, 409})
NETWORK_ERROR_MARKERS = ("timeout", "connection", "network")


@dataclass(frozen=True)
class RetryConfig:
    """Backoff parameters for one retried operation."""

    max_retries: int = 5
    initial_delay: float = 1.0
    max_delay: float = 32.0
    multiplier: float = 2.0
    jitter_fraction: float = 0.25

    @classmethod
    def from_env(cls) -> RetryConfig:
        """Build a config from BUCKET_RETRY_* environment variables."""
        return cls(
            max_retries=int(os.getenv("BUCKET_RETRY_MAX_RETRIES", "5")),
            initial_delay=float(os.getenv("BUCKET_RETRY_INITIAL_DELAY", "1.0")),
            max_delay=float(os.getenv("BUCKET_RETRY_MAX_DELAY", "32.0")),
        )


def is_retryable_status(status_code: int | None) -> bool:
    return status_code in RETRYABLE_STATUS_CODES


def is_network_error(error: BaseException) -> bool:
    """Check whether an error message looks like a transient network failure."""
    message = str(error).lower()
    return any(marker in message for marker in NETWORK_ERROR_MARKERS)


def with_retry(
    operation: Callable[[], _T],
    is_retryable: Callable[[Exception], bool],
    config: RetryConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Callable[[int, Exception], None] | None = None,
) -> _T:
    """Run an operation, retrying classified-retryable failures with backoff.

    Args:
        operation: Zero-argument callable performing one provider call
        is_retryable: Classifier deciding whether a failure may be retried
        config: Backoff parameters (defaults to RetryConfig())
        sleep: Sleep function, injectable for tests
        on_retry: Optional callback receiving the attempt number and error before each sleep

    Returns:
        The operation's result

    Raises:
        RetryExhaustedError: If every attempt failed with a retryable error
        Exception: The first terminal error, unchanged
    """
    config = config or RetryConfig()
    delay = config.initial_delay
    attempt = 0

    while True:
        try:
            return operation()
        except Exception as e:
            if not is_retryable(e):
                raise
            if attempt >= config.max_retries:
                raise RetryExhaustedError(config.max_retries, e) from e
            attempt += 1
            if on_retry is not None:
                on_retry(attempt, e)
            jitter = random.uniform(0, delay * config.jitter_fraction) if config.jitter_fraction > 0 else 0.0
            logger.debug(f"Retryable error on attempt {attempt}, retrying in {delay + jitter:.2f}s: {e}")
            sleep(delay + jitter)
            delay = min(delay * config.multiplier, config.max_delay)
