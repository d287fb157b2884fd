"""Exception hierarchy for gaze_session."""


class GazeSessionError(Exception):
    """Base class for all errors raised by this package."""


# --- Logger contract violations ---

class LoggerUsageError(GazeSessionError):
    """The session logger was used in a way its state does not allow."""


class SessionActiveError(LoggerUsageError):
    """Fields cannot be (un)registered while a log is being recorded."""


class InactiveSessionError(LoggerUsageError):
    """Fields can only be updated after the log has begun."""


class AlreadyActiveError(LoggerUsageError):
    """begin() was called while a log is already being recorded."""


class DuplicateFieldError(LoggerUsageError):
    """A field with the same name is already registered."""


class UnknownFieldError(LoggerUsageError, KeyError):
    """The named field was never registered."""


# --- Recoverable faults ---

class HardwareReadError(GazeSessionError):
    """The tracker did not deliver a frame for this tick."""


class GeometryDegenerateError(GazeSessionError):
    """Two rays are parallel, so they have no unique pair of closest points."""

    def __init__(self, fallback):
        super().__init__("Rays are parallel; no unique closest points.")
        self.fallback = fallback


class RowParseError(GazeSessionError):
    """A single log row could not be interpreted during replay."""

    def __init__(self, line_number: int, message: str):
        super().__init__(f"Line {line_number}: {message}")
        self.line_number = line_number


class SchemaMismatchError(GazeSessionError):
    """A log header does not provide the columns a replay schema requires."""
