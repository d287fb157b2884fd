from .clock import Clock, ManualClock, monotonic
from .logging import ThrottledLogger, setup_logging

__all__ = ["Clock", "ManualClock", "monotonic", "ThrottledLogger", "setup_logging"]
