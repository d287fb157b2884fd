from .gaze import (
    EMPTY_FRAME,
    EyeSample,
    EyeSource,
    GazeRay,
    HeadPose,
    RawFrame,
    RayHit,
    SingleEyeData,
    Vector3,
    WinkState,
)

__all__ = [
    "EMPTY_FRAME",
    "EyeSample",
    "EyeSource",
    "GazeRay",
    "HeadPose",
    "RawFrame",
    "RayHit",
    "SingleEyeData",
    "Vector3",
    "WinkState",
]
