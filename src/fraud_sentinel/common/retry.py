"""Bounded retry with exponential backoff and jitter.

Shared by the incident client and every alert channel. Only
TransientUpstreamError is retried; anything else propagates on the
first attempt.
"""

import logging
import random
import time
from typing import Callable, Optional, Tuple, TypeVar

from fraud_sentinel.common.constants import RetryConstants
from fraud_sentinel.common.exceptions import TransientUpstreamError, UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Fixed-attempt retry policy.

    Delay before attempt n+1 is ``base_delay * 2**(n-1)`` plus a uniform
    jitter in ``[0, max_jitter]``.

    Args:
        max_attempts: Total attempts including the first one
        base_delay: Delay after the first failure, in seconds
        max_jitter: Upper bound of the random jitter, in seconds
        sleep: Sleep function (injectable for tests)
        rng: Random source used for jitter
    """

    def __init__(
        self,
        max_attempts: int = RetryConstants.MAX_ATTEMPTS,
        base_delay: float = RetryConstants.BASE_DELAY_SECONDS,
        max_jitter: float = RetryConstants.MAX_JITTER_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_jitter = max_jitter
        self._sleep = sleep
        self._rng = rng or random.Random()

    @classmethod
    def from_config(cls, config, sleep: Callable[[float], None] = time.sleep) -> "RetryPolicy":
        """Build a policy from the retry fields of a Config."""
        return cls(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay_seconds,
            max_jitter=config.retry_max_jitter_seconds,
            sleep=sleep,
        )

    def backoff(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        jitter = self._rng.uniform(0, self.max_jitter) if self.max_jitter > 0 else 0.0
        return self.base_delay * (2 ** (attempt - 1)) + jitter

    def call(self, fn: Callable[[], T], operation: str = "upstream call") -> Tuple[T, int]:
        """Run fn until it succeeds or attempts are exhausted.

        Returns:
            (result, attempts used)

        Raises:
            TransientUpstreamError: after the last attempt failed transiently
            UpstreamError: any permanent failure, after one attempt
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn(), attempt
            except TransientUpstreamError as e:
                e.attempts = attempt
                if attempt >= self.max_attempts:
                    logger.warning(
                        f"{operation} failed after {attempt} attempts: {e.message}"
                    )
                    raise
                delay = self.backoff(attempt)
                logger.info(
                    f"{operation} attempt {attempt} failed ({e.message}), "
                    f"retrying in {delay:.2f}s"
                )
                self._sleep(delay)
            except UpstreamError as e:
                e.attempts = attempt
                raise
