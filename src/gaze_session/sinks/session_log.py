# src/gaze_session/sinks/session_log.py

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional, TextIO

from gaze_session.errors import (
    AlreadyActiveError,
    DuplicateFieldError,
    InactiveSessionError,
    SessionActiveError,
    UnknownFieldError,
)
from gaze_session.utils.clock import Clock, monotonic

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def sanitize(text: str) -> str:
    """Replaces characters that would break the tab separated layout."""
    return _CONTROL_CHARS.sub("_", text)


@dataclass(slots=True)
class LogField:
    """One output column. Only its value and age change during a session."""
    name: str
    value: str
    always_fresh: bool = False
    age: float = 0.0


class SessionLogger:
    """
    Wide-table time series logger writing one tab separated file per session.

    Fields are registered up front and fix the column order. During a session
    fields are updated by name; once per tick `flush()` writes a row if any
    field changed. A field that was not updated since the previous flush is
    written as the undefined value unless it is registered as always fresh.

    The file looks like::

        time    clip    headX   ...
        0.011   3       0.1520  ...
        0.022   3       NA      ...
    """

    TIME_COLUMN = "time"

    def __init__(
        self,
        directory: Path,
        undefined_value: str = "NA",
        file_naming_pattern: str = "%Y-%m-%d-%H-%M-%S",
        clock: Clock = monotonic,
    ):
        """
        Initializes the SessionLogger.

        Args:
            directory: Where log files are created. Created on `begin()`.
            undefined_value: Written for stale fields.
            file_naming_pattern: strftime pattern that follows the serial.
            clock: Time base for the elapsed-time column.
        """
        self.directory = Path(directory)
        self.undefined_value = undefined_value
        self.file_naming_pattern = file_naming_pattern
        self._clock = clock

        self._fields: dict[str, LogField] = {}
        self._active = False
        self._dirty = False
        self._serial: Optional[int] = None
        self._start_time = 0.0
        self._file_path: Optional[Path] = None
        self._file: Optional[TextIO] = None

    @classmethod
    def from_settings(cls, settings, clock: Clock = monotonic) -> "SessionLogger":
        """Builds a logger from a `SessionLogSettings` section."""
        return cls(
            directory=settings.directory,
            undefined_value=settings.undefined_value,
            file_naming_pattern=settings.file_naming_pattern,
            clock=clock,
        )

    # --- Properties ---

    @property
    def is_logging(self) -> bool:
        """Fields can only be changed while inactive and only be updated while active."""
        return self._active

    @property
    def serial(self) -> Optional[int]:
        return self._serial

    @property
    def file_path(self) -> Optional[Path]:
        """The current log file, or the last one if logging has ended."""
        return self._file_path

    @property
    def field_names(self) -> list[str]:
        return list(self._fields)

    # --- Field set ---

    def register_field(self, name: str, always_fresh: bool = False, initial_value: Optional[str] = None) -> None:
        if self._active:
            raise SessionActiveError(f"Cannot register field '{name}' while a log is being recorded.")
        if name in self._fields:
            raise DuplicateFieldError(f"A logging field named '{name}' already exists.")

        value = self.undefined_value if initial_value is None else sanitize(str(initial_value))
        self._fields[name] = LogField(name, value, always_fresh)

    def unregister_field(self, name: str) -> None:
        if self._active:
            raise SessionActiveError(f"Cannot unregister field '{name}' while a log is being recorded.")
        try:
            del self._fields[name]
        except KeyError:
            raise UnknownFieldError(name) from None

    # --- Session ---

    def next_serial(self) -> int:
        """One more than the highest serial prefix of the log files in the directory."""
        highest = 0
        if self.directory.is_dir():
            for path in self.directory.glob("*.txt"):
                prefix = path.name.split("-", 1)[0]
                if prefix.isdigit():
                    highest = max(highest, int(prefix))
        return highest + 1

    def begin(self) -> int:
        """
        Starts a new log file and returns its serial.

        Serials give log files a clear order through their names.
        """
        if self._active:
            raise AlreadyActiveError(f"Already logging to {self._file_path}.")

        self.directory.mkdir(parents=True, exist_ok=True)
        serial = self.next_serial()
        file_path = self.directory / f"{serial:03d}-{datetime.now().strftime(self.file_naming_pattern)}.txt"

        try:
            # Line buffered, so every row reaches the file as soon as it is written.
            self._file = file_path.open("x", encoding="utf-8", newline="\n", buffering=1)
        except IOError:
            logger.exception(f"Failed to open log file for writing: {file_path}")
            raise

        self._serial = serial
        self._file_path = file_path
        self._start_time = self._clock()
        self._dirty = False
        self._active = True
        self._file.write("\t".join([self.TIME_COLUMN, *self._fields]) + "\n")
        logger.info(f"Logging session {serial} with {len(self._fields)} fields to {file_path}")
        return serial

    def update_field(self, name: str, value: Any) -> None:
        if not self._active:
            raise InactiveSessionError(f"Field '{name}' was updated without having begun to log.")
        try:
            field = self._fields[name]
        except KeyError:
            raise UnknownFieldError(name) from None

        field.value = self.undefined_value if value is None else sanitize(str(value))
        field.age = 0.0
        self._dirty = True

    def update_vector3(self, base_name: str, vector: Iterable[float], precision: int = 4) -> None:
        """
        Updates the fields `<base>X`, `<base>Y` and `<base>Z` in one go.
        """
        x, y, z = vector
        self.update_field(base_name + "X", f"{float(x):.{precision}f}")
        self.update_field(base_name + "Y", f"{float(y):.{precision}f}")
        self.update_field(base_name + "Z", f"{float(z):.{precision}f}")

    def flush(self, tick_seconds: float) -> bool:
        """
        Ends a tick: writes a row if anything changed, then ages every field.

        Returns True if a row was written.
        """
        written = False
        if self._active and self._dirty:
            self._write_fields()
            written = True
        for field in self._fields.values():
            field.age += tick_seconds
        return written

    def end(self, reason: Optional[str] = None) -> None:
        """
        Ends logging and writes the last row if there are unwritten updates.

        When logging has to end unexpectedly, `reason` is appended as one more
        free-text line. This marks the file as incomplete; most statistics
        software will reject it.
        """
        if not self._active:
            return

        self._active = False
        try:
            if self._dirty:
                self._write_fields()
            if reason:
                self._file.write(sanitize(reason) + "\n")
                logger.warning(f"Log {self._file_path} ended unexpectedly: {reason}")
        finally:
            self._close_file()

    def _write_fields(self) -> None:
        elapsed = self._clock() - self._start_time
        values = [
            field.value if field.always_fresh or field.age == 0.0 else self.undefined_value
            for field in self._fields.values()
        ]
        self._file.write("\t".join([f"{elapsed:.3f}", *values]) + "\n")
        self._dirty = False

    def _close_file(self) -> None:
        if self._file:
            self._file.close()
            logger.info(f"Closed log file: {self._file_path}")
            self._file = None
