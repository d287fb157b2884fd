from .geometry import ClosestPoints, closest_points_on_two_rays, midpoint
from .signal import GazeSignalProcessor
from .wink import WinkCertaintyPolicy, classify_wink

__all__ = [
    "ClosestPoints",
    "GazeSignalProcessor",
    "WinkCertaintyPolicy",
    "classify_wink",
    "closest_points_on_two_rays",
    "midpoint",
]
