"""
Bounded retry with exponential backoff and jitter.

delay(attempt) = min(base * 2**attempt + jitter, max_delay), jitter drawn uniformly from [0, 30%] of the exponential
part. Only transient failures are retried. Everything else propagates on the first occurrence.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from src.core.exceptions import RelayerError, RetriesExhaustedError, RetryableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_FRACTION = 0.3


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 5
    base_delay: float = 2.0
    max_delay: float = 30.0


DEFAULT_POLICY = RetryPolicy()
RELAYER_POLICY = RetryPolicy(max_retries=5, base_delay=3.0, max_delay=60.0)


def is_retryable(error: BaseException) -> bool:
    """Network hiccups, timeouts and relayer 5xx / 429 are worth another try."""
    if isinstance(error, RelayerError):
        return error.is_retryable
    return isinstance(error, (RetryableError, TimeoutError, ConnectionError))


def backoff_delay(attempt: int, policy: RetryPolicy, rng: random.Random | None = None) -> float:
    rng = rng or random.Random()
    exponential = policy.base_delay * (2**attempt)
    jitter = rng.uniform(0, JITTER_FRACTION * exponential)
    return min(exponential + jitter, policy.max_delay)


def with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy = DEFAULT_POLICY,
    should_retry: Callable[[BaseException], bool] = is_retryable,
    sleep: Callable[[float], None] = time.sleep,
    rng: random.Random | None = None,
    description: str = "operation",
) -> T:
    """
    Run `operation` and retry transient failures.

    Makes at most `policy.max_retries + 1` calls. Raises RetriesExhaustedError (carrying the last error) once the
    bound is hit, or the original exception straight away when `should_retry` says no.
    """
    attempt = 0
    while True:
        try:
            return operation()
        except Exception as e:
            if not should_retry(e):
                raise
            if attempt >= policy.max_retries:
                logger.error("%s failed after %d attempts: %s", description, attempt + 1, e)
                raise RetriesExhaustedError(attempt + 1, e) from e
            delay = backoff_delay(attempt, policy, rng)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                description,
                attempt + 1,
                policy.max_retries + 1,
                delay,
                e,
            )
            sleep(delay)
            attempt += 1
