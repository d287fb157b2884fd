import logging
import math
import threading
from typing import Optional

import tobii_research as tr

from gaze_session.errors import HardwareReadError
from gaze_session.models.gaze import RawFrame, SingleEyeData
from gaze_session.utils.clock import Clock, monotonic
from .base import FrameSource

logger = logging.getLogger(__name__)


def _to_head_local(v) -> tuple[float, float, float]:
    # Tobii UCS: x to the user's right, z towards the user. RawFrame expects
    # x to the user's left and z looking forward.
    x, y, z = v
    return (-x, y, -z)


class TobiiFrameSource(FrameSource):
    """
    A FrameSource backed by a Tobii Pro eye tracker.

    The SDK delivers gaze and eye openness data on its own thread. The
    callbacks only swap the latest values under a lock; `read()` assembles a
    frame from them on the tick thread.
    """

    def __init__(
        self,
        tracker: Optional[tr.EyeTracker] = None,
        max_openness_mm: float = 12.0,
        stale_after_s: float = 0.1,
        clock: Clock = monotonic,
    ):
        super().__init__()
        self.tracker = tracker
        self._max_openness_mm = max_openness_mm
        self._stale_after_s = stale_after_s
        self._clock = clock

        self._lock = threading.Lock()
        self._gaze: Optional[dict] = None
        self._gaze_time: float = float("-inf")
        self._openness: tuple[float, float] = (0.0, 0.0)

    # --- SDK thread ---

    def _gaze_data_callback(self, gaze_data: dict) -> None:
        received = self._clock()
        with self._lock:
            self._gaze = gaze_data
            self._gaze_time = received

    def _openness_callback(self, data: dict) -> None:
        try:
            right = self._normalize_openness(data["right_eye_openness_value"], data["right_eye_openness_validity"])
            left = self._normalize_openness(data["left_eye_openness_value"], data["left_eye_openness_validity"])
        except KeyError:
            logger.exception("Unexpected eye openness payload from Tobii callback.")
            return
        with self._lock:
            self._openness = (right, left)

    # --- Tick thread ---

    def open(self) -> None:
        if self.tracker is None:
            trackers = tr.find_all_eyetrackers()
            if not trackers:
                raise HardwareReadError("No eye trackers found.")
            self.tracker = trackers[0]
        logger.info(f"Using tracker: {self.tracker.device_name} ({self.tracker.serial_number})")

        self.tracker.subscribe_to(tr.EYETRACKER_GAZE_DATA, self._gaze_data_callback, as_dictionary=True)
        try:
            self.tracker.subscribe_to(
                tr.EYETRACKER_EYE_OPENNESS_DATA, self._openness_callback, as_dictionary=True
            )
        except tr.EyeTrackerFeatureNotSupportedError:
            logger.warning("Tracker does not report eye openness; winks cannot be detected.")
        super().open()

    def _release(self) -> None:
        logger.info("Unsubscribing from Tobii data streams...")
        self.tracker.unsubscribe_from(tr.EYETRACKER_GAZE_DATA, self._gaze_data_callback)
        self.tracker.unsubscribe_from(tr.EYETRACKER_EYE_OPENNESS_DATA, self._openness_callback)

    def read(self) -> RawFrame:
        with self._lock:
            gaze, gaze_time = self._gaze, self._gaze_time
            right_open, left_open = self._openness

        if gaze is None:
            raise HardwareReadError("No gaze data received yet.")
        age = self._clock() - gaze_time
        if age > self._stale_after_s:
            raise HardwareReadError(f"Latest gaze data is {age * 1000:.0f} ms old.")

        right = self._eye(gaze, "right", right_open)
        left = self._eye(gaze, "left", left_open)
        combined = SingleEyeData(
            gaze_origin_mm=tuple((r + l) / 2 for r, l in zip(right.gaze_origin_mm, left.gaze_origin_mm)),
            gaze_direction=_normalized(tuple(r + l for r, l in zip(right.gaze_direction, left.gaze_direction))),
            openness=(right_open + left_open) / 2,
            pupil_diameter_mm=(right.pupil_diameter_mm + left.pupil_diameter_mm) / 2,
        )
        present = bool(gaze["right_gaze_origin_validity"] or gaze["left_gaze_origin_validity"])
        return RawFrame(right=right, left=left, combined=combined, user_present=present)

    def _eye(self, gaze: dict, side: str, openness: float) -> SingleEyeData:
        if not (gaze[f"{side}_gaze_origin_validity"] and gaze[f"{side}_gaze_point_validity"]):
            return SingleEyeData(openness=openness)

        origin = gaze[f"{side}_gaze_origin_in_user_coordinate_system"]
        point = gaze[f"{side}_gaze_point_in_user_coordinate_system"]
        direction = _normalized(tuple(p - o for p, o in zip(point, origin)))
        pupil = gaze[f"{side}_pupil_diameter"] if gaze[f"{side}_pupil_validity"] else 0.0

        return SingleEyeData(
            gaze_origin_mm=_to_head_local(origin),
            gaze_direction=_to_head_local(direction),
            openness=openness,
            pupil_diameter_mm=pupil,
        )

    def _normalize_openness(self, value_mm: float, validity: int) -> float:
        if not validity or math.isnan(value_mm):
            return 0.0
        return min(1.0, max(0.0, value_mm / self._max_openness_mm))


def _normalized(v: tuple[float, ...]) -> tuple[float, float, float]:
    norm = math.sqrt(sum(c * c for c in v))
    if norm == 0.0:
        return (0.0, 0.0, 0.0)
    return tuple(c / norm for c in v)
