"""Real-time playback of a recorded session log."""
import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

import numpy as np

from ..core.protocols import CuePlayer
from ..errors import RowParseError
from ..models import EyeSource
from ..processing.geometry import look_at_rotation
from ..utils.clock import Clock, monotonic
from ..utils.logging import ThrottledLogger
from .schema import ColumnMap, ReplaySchema, detect_schema
from .state import ReplayFrame, ReplayState

logger = logging.getLogger(__name__)


class SessionReplay:
    """
    Plays back the log of an already recorded session in real time.

    Rows are applied in file order, each one not before its timestamp has
    passed since the replay started. Waiting is done with asyncio, so other
    tasks on the loop keep running. Broken rows are skipped with a warning;
    a header that does not fit the schema is rejected up front.
    """

    def __init__(
        self,
        log_path: Optional[Path] = None,
        log_directory: Optional[Path] = None,
        schema: Optional[ReplaySchema] = None,
        undefined_value: str = "NA",
        cue_player: Optional[CuePlayer] = None,
        on_frame: Optional[Callable[[ReplayState], None]] = None,
        clock: Clock = monotonic,
    ):
        """
        Initializes the SessionReplay.

        Args:
            log_path: The log to replay. If it does not exist, the newest log
                in `log_directory` is used instead.
            log_directory: Where to look for a fallback log.
            schema: Pins a schema version. By default the version is detected
                from the header.
            undefined_value: The value the logger wrote for stale fields.
            cue_player: Receives the new cue index whenever it changes.
            on_frame: Called with the state after every applied row.
            clock: Time base for pacing.
        """
        self.log_path = Path(log_path) if log_path else None
        self.log_directory = Path(log_directory) if log_directory else None
        self.schema = schema
        self.undefined_value = undefined_value
        self.cue_player = cue_player
        self.on_frame = on_frame
        self._clock = clock

        self.state = ReplayState()
        self._stop_event = asyncio.Event()
        self._row_warnings = ThrottledLogger(logger, interval_sec=1.0)

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "SessionReplay":
        """Builds a replay from `AppSettings`."""
        return cls(
            log_path=settings.replay.log_path,
            log_directory=settings.session_log.directory,
            undefined_value=settings.session_log.undefined_value,
            **kwargs,
        )

    def stop(self) -> None:
        """Stops after the row currently being applied."""
        self._stop_event.set()

    def resolve_path(self) -> Optional[Path]:
        if self.log_path and self.log_path.is_file():
            return self.log_path
        if self.log_directory is None or not self.log_directory.is_dir():
            return None
        logs = [path for path in self.log_directory.glob("*.txt") if path.is_file()]
        if not logs:
            return None
        return max(logs, key=lambda path: path.stat().st_mtime)

    async def run(self) -> ReplayState:
        """Replays the whole log (or until stopped) and returns the final state."""
        path = self.resolve_path()
        if path is None:
            logger.info("Replay stopped, no log files yet.")
            return self.state

        logger.info(f"Replaying {path}.")
        with path.open(encoding="utf-8") as log:
            # The first line is the header.
            columns = self._resolve_columns(log.readline())
            start_time = self._clock()
            previous_cue: Optional[int] = None

            for line_number, line in enumerate(log, start=2):
                line = line.rstrip("\r\n")
                if not line:
                    continue
                try:
                    frame = self._parse(line_number, line, columns)
                except RowParseError as e:
                    self._skip(e)
                    continue

                if not await self._wait_until(start_time + frame.elapsed):
                    break

                try:
                    self._apply(frame, columns)
                except RowParseError as e:
                    self._skip(e)
                    continue
                finally:
                    self.state.elapsed = frame.elapsed

                self.state.rows_applied += 1
                previous_cue = self._trigger_cue(previous_cue)
                if self.on_frame is not None:
                    self.on_frame(self.state)

        if self._stop_event.is_set():
            logger.info(f"Replay of {path} stopped at {self.state.elapsed:.3f} s.")
        else:
            logger.info(f"Replay of {path} ended.")
        return self.state

    def _resolve_columns(self, header_line: str) -> ColumnMap:
        header = header_line.rstrip("\r\n").split("\t")
        columns = self.schema.resolve(header) if self.schema else detect_schema(header)
        self.state.schema_version = columns.schema.version
        logger.debug(f"Using replay schema v{columns.schema.version}.")
        return columns

    async def _wait_until(self, deadline: float) -> bool:
        """
        Yields to the event loop until `deadline` is reached.
        Returns False if the replay was stopped meanwhile.
        """
        while not self._stop_event.is_set() and (remaining := deadline - self._clock()) > 0:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass
        # Let other tasks run even when rows are already overdue.
        await asyncio.sleep(0)
        return not self._stop_event.is_set()

    def _parse(self, line_number: int, line: str, columns: ColumnMap) -> ReplayFrame:
        values = tuple(line.split("\t"))
        if len(values) != columns.width:
            raise RowParseError(line_number, f"expected {columns.width} columns, found {len(values)}")
        try:
            elapsed = float(values[0])
        except ValueError:
            raise RowParseError(line_number, f"malformed time value {values[0]!r}") from None
        return ReplayFrame(line_number, elapsed, values)

    def _apply(self, frame: ReplayFrame, columns: ColumnMap) -> None:
        schema = columns.schema
        values = frame.values
        try:
            for base in schema.markers:
                texts = [values[i] for i in columns.vector(base)]
                # A marker only moves if all of its components are defined.
                if self.undefined_value not in texts:
                    self.state.markers[base] = np.array([float(t) for t in texts])

            for source, name in ((EyeSource.RIGHT, schema.openness_right), (EyeSource.LEFT, schema.openness_left)):
                text = values[columns[name]]
                if text != self.undefined_value:
                    self.state.eye_openness[source] = float(text)

            cue_text = values[columns[schema.cue]]
            if cue_text != self.undefined_value:
                self.state.cue = int(cue_text)
        except ValueError as e:
            raise RowParseError(frame.line_number, str(e)) from None

        pose = [self.state.marker(name) for name in schema.pose]
        if all(marker is not None for marker in pose):
            self.state.head_rotation = look_at_rotation(*pose)

    def _trigger_cue(self, previous: Optional[int]) -> Optional[int]:
        """Plays the cue only when it differs from the previous row's."""
        current = self.state.cue
        if current is not None and current != previous:
            logger.debug(f"Cue changed to {current}.")
            if self.cue_player is not None:
                self.cue_player.play(current)
            return current
        return previous

    def _skip(self, error: RowParseError) -> None:
        self.state.rows_skipped += 1
        self._row_warnings.warning("Skipping log row: %s", error)
