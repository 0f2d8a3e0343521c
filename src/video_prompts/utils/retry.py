"""Retry policy for calls to the inference endpoint."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from video_prompts.exceptions import EndpointError, EndpointUnreachable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(error: Exception) -> bool:
    """Connection failures, timeouts and 5xx/429 answers are worth another attempt."""
    if isinstance(error, EndpointUnreachable):
        return True
    if isinstance(error, EndpointError) and error.status_code is not None:
        return error.status_code >= 500 or error.status_code == 429
    return False


@dataclass
class RetryPolicy:
    """Exponential backoff between attempts.

    The default of a single attempt means failures surface immediately and
    recovery is left to the caller.
    """
    max_attempts: int = 1
    backoff_factor: float = 2.0
    max_delay: float = 60.0
    retry_on: Callable[[Exception], bool] = is_retryable
    sleep: Callable[[float], None] = time.sleep

    def delay_for(self, attempt: int) -> float:
        """Delay after the given zero-based failed attempt."""
        return min(self.backoff_factor ** attempt, self.max_delay)

    def call(self, func: Callable[[], T]) -> T:
        """Run ``func`` until it succeeds, fails with a non-retryable error or attempts run out."""
        attempts = max(1, self.max_attempts)
        last_exception: Exception | None = None

        for attempt in range(attempts):
            try:
                return func()
            except Exception as e:
                if not self.retry_on(e):
                    raise
                last_exception = e

                if attempt < attempts - 1:
                    delay = self.delay_for(attempt)
                    logger.warning(f"Attempt {attempt + 1} failed: {e}. Retrying in {delay}s...")
                    self.sleep(delay)
                elif attempts > 1:
                    logger.error(f"All {attempts} attempts failed: {e}")

        raise last_exception
