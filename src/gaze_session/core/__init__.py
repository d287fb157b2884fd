from .fields import RECORDING_FIELDS, SCHEMA_VERSION, Field, GazeFieldRecorder, vector_fields
from .manager import SessionManager
from .protocols import CuePlayer, HeadTracker, RayCaster
from .runner import TickRunner

__all__ = [
    "CuePlayer",
    "Field",
    "GazeFieldRecorder",
    "HeadTracker",
    "RECORDING_FIELDS",
    "RayCaster",
    "SCHEMA_VERSION",
    "SessionManager",
    "TickRunner",
    "vector_fields",
]
