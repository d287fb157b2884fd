from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, PositiveFloat, PositiveInt, model_validator, Field

from .utils import LoggingConfig


class TrackerSettings(BaseModel):
    """Signal processing of the raw eye tracking data."""
    wink_threshold: float = Field(
        0.3, ge=0.0, le=1.0,
        description="Minimal difference in eye openness between both eyes required for a wink."
    )
    window_seconds: PositiveFloat = Field(
        1.0, description="How long eye openness values are kept for wink certainty."
    )
    origin_scale: PositiveFloat = Field(
        0.001, description="Factor converting tracker gaze origins to scene units (mm to m)."
    )
    handedness_flip: tuple[float, float, float] = Field(
        (-1.0, 1.0, 1.0),
        description="Per-axis sign applied to convert the tracker's right-handed system to the scene's."
    )
    certainty_hold_similarity: float = Field(
        0.1, ge=0.0, le=1.0,
        description="An active wink is fully certain once this fraction of the window agrees."
    )
    certainty_min_samples: PositiveInt = Field(
        3, description="Samples required in the window before certainty is rated."
    )
    tobii_max_openness_mm: PositiveFloat = Field(
        12.0, description="Tobii eye openness (mm) that maps to fully open."
    )

    @model_validator(mode='after')
    def validate_flip(self) -> "TrackerSettings":
        if any(sign not in (-1.0, 1.0) for sign in self.handedness_flip):
            raise ValueError('handedness_flip entries must be 1 or -1.')
        return self


class SessionLogSettings(BaseModel):
    directory: Path = Field(
        default_factory=lambda: Path.cwd() / "recordings",
        description="Directory where log files are written."
    )
    undefined_value: str = Field("NA", min_length=1, description="Written for stale fields.")
    file_naming_pattern: str = Field(
        "%Y-%m-%d-%H-%M-%S", description="strftime pattern following the serial in file names."
    )


class RunnerSettings(BaseModel):
    tick_rate_hz: PositiveFloat = Field(90.0, description="Ticks per second of the recording loop.")


class ReplaySettings(BaseModel):
    log_path: Optional[Path] = Field(
        None, description="Log to replay. Falls back to the newest file in the log directory."
    )


class UploadSettings(BaseModel):
    server_url: str = Field("", description="Endpoint receiving finished logs. Empty disables upload.")
    form_field: str = Field(
        "PleaseChangeTheSecurityKey",
        description="Multipart field name the server expects; acts as a shared access key."
    )
    retry_attempts: PositiveInt = Field(3, description="Attempts before giving up.")
    retry_backoff_factor_s: float = Field(0.5, ge=0, description="Base factor for exponential backoff.")
    timeout_s: PositiveFloat = Field(30.0, description="Timeout per request attempt.")


class AppSettings(BaseSettings):
    """
    Main application settings, loaded from environment variables and defaults.
    """
    use_dummy_mode: bool = False

    tracker: TrackerSettings = Field(default_factory=TrackerSettings)
    session_log: SessionLogSettings = Field(default_factory=SessionLogSettings)
    runner: RunnerSettings = Field(default_factory=RunnerSettings)
    replay: ReplaySettings = Field(default_factory=ReplaySettings)
    upload: UploadSettings = Field(default_factory=UploadSettings)

    # Logging
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="GAZE__",
        env_file=".env",
        env_nested_delimiter='__',
        case_sensitive=False
    )
