from .player import SessionReplay
from .schema import SCHEMA_V1, SCHEMAS, ColumnMap, ReplaySchema, detect_schema
from .state import ReplayFrame, ReplayState

__all__ = [
    "ColumnMap",
    "ReplayFrame",
    "ReplaySchema",
    "ReplayState",
    "SCHEMAS",
    "SCHEMA_V1",
    "SessionReplay",
    "detect_schema",
]
