from .base import FrameSource
from .dummy import DummyFrameSource, StaticHeadTracker, WallRayCaster

__all__ = ["FrameSource", "DummyFrameSource", "StaticHeadTracker", "WallRayCaster"]


def __getattr__(name):
    # The Tobii SDK is an optional install; only import it when asked for.
    if name == "TobiiFrameSource":
        from .tobii import TobiiFrameSource
        return TobiiFrameSource
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
