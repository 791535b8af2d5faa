from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from .errors import RetryExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_s: float = 5.0
    max_delay_s: float = 60.0

    def delay_for(self, attempt: int) -> float:
        """Backoff after a failed 1-based attempt: base * 2**(attempt-1), capped."""
        return min(self.base_delay_s * (2 ** (attempt - 1)), self.max_delay_s)


def run_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    label: str,
    sleep: Callable[[float], None] = time.sleep,
    on_failure: Callable[[int, Exception], None] | None = None,
) -> T:
    """Run operation until it succeeds or policy.max_attempts is used up.

    No sleep follows the last attempt. Raises RetryExhausted carrying the last error.
    """
    attempts = max(1, int(policy.max_attempts))
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except Exception as e:
            last_error = e
            if on_failure is not None:
                on_failure(attempt, e)
            if attempt < attempts:
                delay = policy.delay_for(attempt)
                logger.warning("attempt %d/%d failed for %s, retrying in %.1fs: %s", attempt, attempts, label, delay, e)
                sleep(delay)
            else:
                logger.error("attempt %d/%d failed for %s: %s", attempt, attempts, label, e)

    assert last_error is not None
    raise RetryExhausted(label, attempts, last_error) from last_error
