import logging
import math
from typing import Optional

from gaze_session.errors import HardwareReadError
from gaze_session.models.gaze import GazeRay, HeadPose, RawFrame, RayHit, SingleEyeData
from gaze_session.utils.clock import Clock, monotonic
from .base import FrameSource

logger = logging.getLogger(__name__)


class DummyFrameSource(FrameSource):
    """
    A FrameSource that simulates eye tracking data for development and testing.

    Both eyes converge on a target that moves along a horizontal circle in
    front of the user. Every `wink_period_s` seconds one eye closes for
    `wink_duration_s`, alternating sides. A fraction of reads can be made to
    fail to exercise the stale-value path.
    """

    IPD_MM = 63.0

    def __init__(
        self,
        clock: Clock = monotonic,
        radius_m: float = 0.5,
        distance_m: float = 1.5,
        speed: float = 0.1,
        wink_period_s: float = 6.0,
        wink_duration_s: float = 2.5,
        failure_every: Optional[int] = None,
    ):
        """
        Initializes the DummyFrameSource.

        Args:
            clock: Time base for the simulated movement.
            radius_m: Radius of the circular path of the focus target.
            distance_m: Distance of the circle's center in front of the user.
            speed: Revolutions per second of the focus target.
            wink_period_s: Time between the starts of two simulated winks.
            wink_duration_s: How long each simulated wink lasts.
            failure_every: If set, every n-th read raises HardwareReadError.
        """
        super().__init__()
        if wink_duration_s >= wink_period_s:
            raise ValueError("wink_duration_s must be shorter than wink_period_s.")

        self._clock = clock
        self._radius_m = radius_m
        self._distance_m = distance_m
        self._speed = speed
        self._wink_period_s = wink_period_s
        self._wink_duration_s = wink_duration_s
        self._failure_every = failure_every
        self._start: float = clock()
        self._reads = 0

        logger.info("DummyFrameSource initialized.")

    def open(self) -> None:
        super().open()
        self._start = self._clock()
        self._reads = 0

    def read(self) -> RawFrame:
        self._reads += 1
        if self._failure_every and self._reads % self._failure_every == 0:
            raise HardwareReadError(f"Simulated dropout on read {self._reads}.")

        t = self._clock() - self._start
        angle = t * self._speed * 2 * math.pi
        # Tracker coordinates are right-handed: x points to the user's left.
        target = (
            -self._radius_m * 1000 * math.cos(angle),
            0.0,
            (self._distance_m + self._radius_m * math.sin(angle)) * 1000,
        )

        right_open, left_open = self._openness(t)
        right = self._eye(target, -self.IPD_MM / 2, right_open)
        left = self._eye(target, self.IPD_MM / 2, left_open)
        combined = self._eye(target, 0.0, (right_open + left_open) / 2)

        return RawFrame(right=right, left=left, combined=combined, user_present=True)

    def _openness(self, t: float) -> tuple[float, float]:
        cycle, phase = divmod(t, self._wink_period_s)
        winking = phase >= self._wink_period_s - self._wink_duration_s
        if not winking:
            return 0.9, 0.9
        # Alternate between right and left winks.
        return (0.1, 0.9) if int(cycle) % 2 == 0 else (0.9, 0.1)

    @staticmethod
    def _eye(target, x_offset_mm: float, openness: float) -> SingleEyeData:
        origin = (x_offset_mm, 0.0, 0.0)
        delta = [t - o for t, o in zip(target, origin)]
        norm = math.sqrt(sum(d * d for d in delta))
        direction = tuple(d / norm for d in delta)
        return SingleEyeData(
            gaze_origin_mm=origin,
            gaze_direction=direction,
            openness=openness,
            pupil_diameter_mm=3.5,
        )


class StaticHeadTracker:
    """A head that never moves, for running without a scene."""

    def __init__(self, pose: Optional[HeadPose] = None):
        self.pose = pose or HeadPose.of((0.0, 1.6, 0.0))

    def head_pose(self) -> HeadPose:
        return self.pose


class WallRayCaster:
    """Intersects rays with a single wall facing the user at `distance_m` along +z."""

    def __init__(self, distance_m: float = 2.0, name: str = "wall"):
        self.distance_m = distance_m
        self.name = name

    def ray_cast(self, ray: GazeRay) -> Optional[RayHit]:
        dz = ray.direction[2]
        if dz <= 0:
            return None
        t = (self.distance_m - ray.origin[2]) / dz
        if t < 0:
            return None
        return RayHit(point=ray.origin + ray.direction * t, collider_name=self.name)
