"""Per-tick processing of dual-eye tracker data into gaze features."""
from __future__ import annotations

import logging
from collections import deque
from typing import Optional

import numpy as np

from ..acquisition import FrameSource
from ..errors import HardwareReadError
from ..models import EMPTY_FRAME, EyeSample, EyeSource, GazeRay, HeadPose, RawFrame, WinkState
from ..utils.clock import Clock, monotonic
from ..utils.logging import ThrottledLogger
from .geometry import ZERO_FALLBACK, closest_points_on_two_rays, transform_ray
from .wink import WinkCertaintyPolicy, classify_wink

logger = logging.getLogger(__name__)


class GazeSignalProcessor:
    """
    Centralizes access to the eye tracking data of one tracker.

    `update()` is called once per tick, before anything reads from the
    processor. It polls the frame source and maintains a time-bounded window
    of eye openness samples, which backs the wink certainty rating. All
    getters work on the latest successfully read frame, so a failed read
    leaves the previous (stale but present) values in place.
    """

    def __init__(
        self,
        source: FrameSource,
        clock: Clock = monotonic,
        wink_threshold: float = 0.3,
        window_seconds: float = 1.0,
        origin_scale: float = 0.001,
        handedness_flip: tuple[float, float, float] = (-1.0, 1.0, 1.0),
        certainty_policy: Optional[WinkCertaintyPolicy] = None,
        degenerate_fallback: tuple[np.ndarray, np.ndarray] = ZERO_FALLBACK,
    ):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive.")

        self._source = source
        self._clock = clock
        self.wink_threshold = wink_threshold
        self.window_seconds = window_seconds
        self.origin_scale = origin_scale
        self._flip = np.asarray(handedness_flip, dtype=float)
        self.certainty_policy = certainty_policy or WinkCertaintyPolicy()
        self.degenerate_fallback = degenerate_fallback

        self._frame: RawFrame = EMPTY_FRAME
        self._window: deque[EyeSample] = deque()
        self._read_errors = ThrottledLogger(logger, interval_sec=5.0)

    @classmethod
    def from_settings(cls, source: FrameSource, settings, clock: Clock = monotonic) -> "GazeSignalProcessor":
        """Builds a processor from a `TrackerSettings` section."""
        return cls(
            source,
            clock=clock,
            wink_threshold=settings.wink_threshold,
            window_seconds=settings.window_seconds,
            origin_scale=settings.origin_scale,
            handedness_flip=settings.handedness_flip,
            certainty_policy=WinkCertaintyPolicy(
                hold_similarity=settings.certainty_hold_similarity,
                min_samples=settings.certainty_min_samples,
            ),
        )

    # --- Tick ---

    def update(self) -> bool:
        """
        Reads one frame and refreshes the openness window.

        Returns False if the source failed this tick. That is never fatal:
        the previous frame is kept and old samples are still evicted.
        """
        ok = True
        try:
            frame = self._source.read()
        except HardwareReadError as e:
            self._read_errors.warning("Tracker read failed, keeping previous values: %s", e)
            ok = False
        else:
            self.ingest(frame)

        self._evict(self._clock())
        return ok

    def ingest(self, frame: RawFrame) -> None:
        """Makes `frame` the current one and records its openness values."""
        self._frame = frame
        self._window.append(self._current_sample())

    def _evict(self, now: float) -> None:
        while self._window and now - self._window[0].timestamp > self.window_seconds:
            self._window.popleft()

    def _current_sample(self) -> EyeSample:
        return EyeSample(
            timestamp=self._clock(),
            right_openness=self._frame.right.openness,
            left_openness=self._frame.left.openness,
        )

    @property
    def window(self) -> tuple[EyeSample, ...]:
        return tuple(self._window)

    @property
    def frame(self) -> RawFrame:
        return self._frame

    # --- Rays ---

    def get_ray(self, source: EyeSource = EyeSource.COMBINED, head: Optional[HeadPose] = None) -> GazeRay:
        """
        Gaze ray of the given source.

        The tracker reports in a right-handed system while the scene is
        left-handed, hence the axis flip. Without a head pose the ray stays in
        head-local coordinates.
        """
        eye = self._frame.eye(source)
        origin = np.asarray(eye.gaze_origin_mm, dtype=float) * self.origin_scale * self._flip
        direction = np.asarray(eye.gaze_direction, dtype=float) * self._flip
        ray = GazeRay(origin, direction)
        if head is not None:
            ray = transform_ray(head, ray)
        return ray

    def get_focus_point(self, head: Optional[HeadPose] = None) -> np.ndarray:
        """
        The point where the user is focusing, fused from both gaze rays.

        The rays rarely intersect, so the point halfway between their closest
        points is used. Accuracy drops noticeably for targets beyond ~3 m.
        """
        closest = closest_points_on_two_rays(
            self.get_ray(EyeSource.RIGHT, head),
            self.get_ray(EyeSource.LEFT, head),
            fallback=self.degenerate_fallback,
        )
        if closest.parallel:
            logger.debug("Gaze rays are parallel; using fallback focus point.")
        return closest.midpoint

    # --- Eye state ---

    def get_eye_openness(self, source: EyeSource = EyeSource.COMBINED) -> float:
        """0.0 (closed) to 1.0 (open). Combined is the mean of both eyes."""
        if source is EyeSource.COMBINED:
            return (self._frame.right.openness + self._frame.left.openness) / 2.0
        return self._frame.eye(source).openness

    def get_pupil_diameter(self, source: EyeSource = EyeSource.COMBINED) -> float:
        """Pupil diameter in mm. Combined is the mean of both eyes."""
        if source is EyeSource.COMBINED:
            return (self._frame.right.pupil_diameter_mm + self._frame.left.pupil_diameter_mm) / 2.0
        return self._frame.eye(source).pupil_diameter_mm

    def is_user_present(self) -> bool:
        return self._frame.user_present

    def get_wink_state(self) -> WinkState:
        return classify_wink(self._current_sample(), self.wink_threshold)

    def get_wink_state_with_certainty(self) -> tuple[WinkState, float]:
        """
        The current wink state together with a certainty from 0.0 to 1.0.

        Callers can apply their own certainty threshold to avoid reacting to
        fluctuations.
        """
        state = self.get_wink_state()
        certainty = self.certainty_policy.certainty(
            state,
            self._window,
            self.wink_threshold,
            now=self._clock(),
            window_seconds=self.window_seconds,
        )
        return state, certainty
