from typing import Optional, Protocol, runtime_checkable

from ..models import GazeRay, HeadPose, RayHit


@runtime_checkable
class RayCaster(Protocol):
    """
    The scene's ray intersection primitive.
    Whether it's a game engine, a mesh library or a test double, it must
    return the first hit or None.
    """
    def ray_cast(self, ray: GazeRay) -> Optional[RayHit]: ...


@runtime_checkable
class HeadTracker(Protocol):
    """Provides the head transform snapshot for the current tick."""
    def head_pose(self) -> HeadPose: ...


@runtime_checkable
class CuePlayer(Protocol):
    """Plays the cue with the given index once."""
    def play(self, index: int) -> None: ...
