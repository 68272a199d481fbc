"""Fixed-interval gate used by every third-party client."""

import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """Guarantee a minimum spacing between consecutive call starts.

    ``wait()`` is invoked right before a request goes out. The spacing holds
    whether or not the previous call succeeded, since the gate only looks at
    when it was last opened.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self._clock = clock
        self.sleep = sleep
        self._last_start: Optional[float] = None

    def wait(self) -> float:
        """Block until the gate opens; return the number of seconds slept."""
        slept = 0.0
        if self._last_start is not None:
            remaining = self.min_interval - (self._clock() - self._last_start)
            if remaining > 0:
                logger.debug("Rate limiter sleeping %.3fs", remaining)
                self.sleep(remaining)
                slept = remaining
        self._last_start = self._clock()
        return slept
