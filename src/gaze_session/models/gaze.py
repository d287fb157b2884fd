from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional

import numpy as np

Vector3 = tuple[float, float, float]


class EyeSource(Enum):
    """
    Identifies a part of the eye tracking data.

    Left and right are seen from the user's point of view. Combined is the
    tracker's own combination of both eyes.
    """
    RIGHT = auto()
    LEFT = auto()
    COMBINED = auto()


class WinkState(Enum):
    """None means both eyes are about equally open or closed."""
    NONE = auto()
    RIGHT = auto()
    LEFT = auto()


@dataclass(slots=True, frozen=True)
class SingleEyeData:
    """
    Data for one eye as reported by the tracker.

    Origin and direction are in the tracker's right-handed, head-local
    coordinate system. The origin is in millimeters.
    """
    gaze_origin_mm: Vector3 = (0.0, 0.0, 0.0)
    gaze_direction: Vector3 = (0.0, 0.0, 0.0)
    openness: float = 0.0
    pupil_diameter_mm: float = 0.0


@dataclass(slots=True, frozen=True)
class RawFrame:
    """
    A standardized, immutable container for one tracker reading.

    Sources convert their SDK-specific data into this type, so nothing past
    acquisition depends on a particular tracking SDK.
    """
    right: SingleEyeData = field(default_factory=SingleEyeData)
    left: SingleEyeData = field(default_factory=SingleEyeData)
    combined: SingleEyeData = field(default_factory=SingleEyeData)
    user_present: bool = False

    def eye(self, source: EyeSource) -> SingleEyeData:
        if source is EyeSource.RIGHT:
            return self.right
        if source is EyeSource.LEFT:
            return self.left
        return self.combined


EMPTY_FRAME = RawFrame()


@dataclass(slots=True, frozen=True)
class EyeSample:
    """One set of eye openness values, buffered for wink certainty."""
    timestamp: float
    right_openness: float
    left_openness: float

    @property
    def difference(self) -> float:
        return abs(self.right_openness - self.left_openness)


@dataclass(frozen=True)
class GazeRay:
    origin: np.ndarray
    direction: np.ndarray

    @classmethod
    def of(cls, origin, direction) -> "GazeRay":
        return cls(np.asarray(origin, dtype=float), np.asarray(direction, dtype=float))


@dataclass(frozen=True)
class HeadPose:
    """
    Snapshot of the head transform for one tick.

    `forward` and `up` need not be normalized or exactly orthogonal; a proper
    basis is derived from them.
    """
    position: np.ndarray
    forward: np.ndarray
    up: np.ndarray

    @classmethod
    def of(cls, position, forward=(0.0, 0.0, 1.0), up=(0.0, 1.0, 0.0)) -> "HeadPose":
        return cls(
            np.asarray(position, dtype=float),
            np.asarray(forward, dtype=float),
            np.asarray(up, dtype=float),
        )


@dataclass(frozen=True)
class RayHit:
    """First object hit by a ray cast, as reported by the scene."""
    point: np.ndarray
    collider_name: Optional[str] = None
