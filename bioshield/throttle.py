"""
Pacing primitive for courtesy delays between outbound calls.

Used between the NVD and KEV ingestion stages and between successive
model calls in batch analysis. Clock and sleep are injectable so the
timing can be checked without real waits.
"""

import time
from typing import Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


class Pacer:
    """
    Enforces a minimum interval between paced operations.

    The first ``wait()`` returns immediately; each later call sleeps for
    whatever remains of ``interval_seconds`` since the previous mark.
    """

    def __init__(
        self,
        interval_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        name: str = "pacer"
    ):
        self.interval_seconds = interval_seconds
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._last_mark: Optional[float] = None

    def mark(self):
        """Record that a paced operation just finished."""
        self._last_mark = self._clock()

    def wait(self) -> float:
        """
        Sleep until the interval since the last mark has elapsed, then mark.

        Returns:
            Seconds slept.
        """
        slept = 0.0
        if self._last_mark is not None:
            remaining = self.interval_seconds - (self._clock() - self._last_mark)
            if remaining > 0:
                logger.debug("pacer_wait", pacer=self.name, wait_seconds=round(remaining, 3))
                self._sleep(remaining)
                slept = remaining
        self.mark()
        return slept

    def reset(self):
        """Forget the last mark so the next wait returns immediately."""
        self._last_mark = None
