from .session_log import LogField, SessionLogger, sanitize
from .upload import LogUploader

__all__ = ["LogField", "LogUploader", "SessionLogger", "sanitize"]
