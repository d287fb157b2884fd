import time
import logging


class ThrottledLogger:
    """
    Collapses a burst of identical warnings into one line per interval.

    Used for faults that can repeat every tick (tracker read errors, broken
    replay rows). The leading counter tells how many occurrences the emitted
    line stands for.
    """
    def __init__(self, logger: logging.Logger, interval_sec: float = 5.0) -> None:
        self._logger = logger
        self._interval = interval_sec
        self._last_log_time = float("-inf")
        self._counter = 0

    @property
    def suppressed(self) -> int:
        """Occurrences counted since the last emitted line."""
        return self._counter

    def warning(self, message: str, *args, **kwargs) -> bool:
        return self._log(logging.WARNING, message, *args, **kwargs)

    def _log(self, level: int, message: str, *args, **kwargs) -> bool:
        self._counter += 1
        now = time.monotonic()

        if now - self._last_log_time < self._interval:
            return False

        self._logger.log(level, "[%d] " + message, self._counter, *args, **kwargs)
        self._last_log_time = now
        self._counter = 0
        return True


def setup_logging(level: str, fmt: str) -> None:
    """Configure root logging once for command line use."""
    logging.basicConfig(level=level.upper(), format=fmt)
