import time
from typing import Callable

# Seconds on a monotonic timeline. Components take one of these instead of
# calling time.monotonic() directly, so ticks can be driven by simulated time.
Clock = Callable[[], float]

monotonic: Clock = time.monotonic


class ManualClock:
    """A clock that only moves when told to."""
    __slots__ = ("now",)

    def __init__(self, start: float = 0.0):
        self.now: float = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now
