from __future__ import annotations

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Minimum interval between the starts of consecutive external calls.

    Holds a single "last call" instant. Not safe to share between threads;
    the pipeline owns one limiter and processes pages sequentially.
    """

    def __init__(
        self,
        min_interval_s: float = 1.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval_s = float(min_interval_s)
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None

    def wait(self) -> float:
        """Block until the interval has elapsed, then stamp the call start.

        Returns the number of seconds waited.
        """
        waited = 0.0
        if self._last_call is not None:
            elapsed = self._clock() - self._last_call
            if elapsed < self.min_interval_s:
                waited = self.min_interval_s - elapsed
                logger.debug("rate limiting: waiting %.3fs before next call", waited)
                self._sleep(waited)
        self._last_call = self._clock()
        return waited
