"""The standard set of recorded fields and how they are filled each tick."""
import logging
from typing import Optional

from ..models import EyeSource
from ..processing import GazeSignalProcessor
from ..processing.geometry import head_basis
from ..sinks import SessionLogger
from .protocols import HeadTracker, RayCaster

logger = logging.getLogger(__name__)

AXES = ("X", "Y", "Z")


def vector_fields(base: str) -> tuple[str, str, str]:
    """Vector fields are named by suffix: "head" becomes headX, headY, headZ."""
    return tuple(base + axis for axis in AXES)


class Field:
    """Names of the logged fields. Vector bases expand through `vector_fields`."""
    # Index of the cue (clip) currently played, and how often it was started.
    CLIP = "clip"
    TRY = "try"
    # [m] Head position as given by the head tracker.
    HEAD = "head"
    # Unit vector pointing up from the head.
    UP = "up"
    # [m] Point 1 m in front of the head, i.e. the general view direction.
    VIEW = "view"
    # [m] First scene hit of each gaze ray, if any.
    HIT_RIGHT = "hitRight"
    HIT_LEFT = "hitLeft"
    # Name of the object hit by each gaze ray.
    COLLIDER_RIGHT = "colliderRight"
    COLLIDER_LEFT = "colliderLeft"
    # [m] Fused focus point of both gaze rays.
    FOCUS = "focus"
    OPENNESS_RIGHT = "opennessRight"
    OPENNESS_LEFT = "opennessLeft"
    # [mm]
    PUPIL_RIGHT = "pupilRight"
    PUPIL_LEFT = "pupilLeft"


SCHEMA_VERSION = 1

# (name, always fresh) in column order.
RECORDING_FIELDS: tuple[tuple[str, bool], ...] = (
    (Field.CLIP, True),
    (Field.TRY, True),
    # The head pose is always available.
    *((name, True) for name in vector_fields(Field.HEAD)),
    *((name, True) for name in vector_fields(Field.UP)),
    *((name, True) for name in vector_fields(Field.VIEW)),
    # Hits only exist while looking at scene objects.
    *((name, False) for name in vector_fields(Field.HIT_RIGHT)),
    *((name, False) for name in vector_fields(Field.HIT_LEFT)),
    (Field.COLLIDER_RIGHT, False),
    (Field.COLLIDER_LEFT, False),
    # Only while a user is wearing the headset.
    *((name, False) for name in vector_fields(Field.FOCUS)),
    (Field.OPENNESS_RIGHT, False),
    (Field.OPENNESS_LEFT, False),
    (Field.PUPIL_RIGHT, False),
    (Field.PUPIL_LEFT, False),
)


class GazeFieldRecorder:
    """
    Feeds the processor's features and the scene's data into the logger.

    `record()` is called once per tick after the processor has been updated
    and before the logger is flushed.
    """

    def __init__(
        self,
        session_log: SessionLogger,
        processor: GazeSignalProcessor,
        head_tracker: HeadTracker,
        ray_caster: Optional[RayCaster] = None,
        view_distance_m: float = 1.0,
    ):
        self.session_log = session_log
        self.processor = processor
        self.head_tracker = head_tracker
        self.ray_caster = ray_caster
        self.view_distance_m = view_distance_m

    def register(self) -> None:
        for name, always_fresh in RECORDING_FIELDS:
            self.session_log.register_field(name, always_fresh)
        logger.debug(f"Registered {len(RECORDING_FIELDS)} fields (schema v{SCHEMA_VERSION}).")

    def record(self) -> None:
        if not self.session_log.is_logging:
            return

        log = self.session_log
        head = self.head_tracker.head_pose()
        basis = head_basis(head)
        log.update_vector3(Field.HEAD, head.position)
        log.update_vector3(Field.UP, basis[:, 1])
        log.update_vector3(Field.VIEW, head.position + basis[:, 2] * self.view_distance_m)

        # Two separate casts; the combined ray is not reliable enough.
        if self.ray_caster is not None:
            for source, hit_base, collider_field in (
                (EyeSource.RIGHT, Field.HIT_RIGHT, Field.COLLIDER_RIGHT),
                (EyeSource.LEFT, Field.HIT_LEFT, Field.COLLIDER_LEFT),
            ):
                hit = self.ray_caster.ray_cast(self.processor.get_ray(source, head))
                if hit is not None:
                    log.update_vector3(hit_base, hit.point)
                    log.update_field(collider_field, hit.collider_name)

        if self.processor.is_user_present():
            log.update_vector3(Field.FOCUS, self.processor.get_focus_point(head))
            log.update_field(Field.OPENNESS_RIGHT, self.processor.get_eye_openness(EyeSource.RIGHT))
            log.update_field(Field.OPENNESS_LEFT, self.processor.get_eye_openness(EyeSource.LEFT))
            log.update_field(Field.PUPIL_RIGHT, self.processor.get_pupil_diameter(EyeSource.RIGHT))
            log.update_field(Field.PUPIL_LEFT, self.processor.get_pupil_diameter(EyeSource.LEFT))

    def update_status(self, clip: int, attempt: int, undefined: bool = False) -> None:
        """
        Writes the cue status fields. With `undefined` they are logged as
        undefined, e.g. while the procedure is paused.
        """
        if undefined:
            self.session_log.update_field(Field.CLIP, None)
            self.session_log.update_field(Field.TRY, None)
        else:
            self.session_log.update_field(Field.CLIP, clip)
            self.session_log.update_field(Field.TRY, attempt)
