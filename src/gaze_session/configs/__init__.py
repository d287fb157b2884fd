from .app import (
    AppSettings,
    ReplaySettings,
    RunnerSettings,
    SessionLogSettings,
    TrackerSettings,
    UploadSettings,
)
from .utils import LoggingConfig

__all__ = [
    "AppSettings",
    "LoggingConfig",
    "ReplaySettings",
    "RunnerSettings",
    "SessionLogSettings",
    "TrackerSettings",
    "UploadSettings",
]
