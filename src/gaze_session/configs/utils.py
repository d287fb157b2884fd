import logging

from pydantic import BaseModel, field_validator


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)-8s] [%(name)s] %(message)s"

    @field_validator("level")
    @classmethod
    def known_level(cls, value: str) -> str:
        if not isinstance(logging.getLevelName(value.upper()), int):
            raise ValueError(f"Unknown logging level: {value}")
        return value.upper()
