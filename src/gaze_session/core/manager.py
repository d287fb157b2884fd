import logging
from pathlib import Path
from typing import Optional

from .fields import GazeFieldRecorder
from .protocols import HeadTracker, RayCaster
from .runner import TickCallback, TickRunner
from ..acquisition import FrameSource
from ..configs import AppSettings
from ..processing import GazeSignalProcessor
from ..sinks import LogUploader, SessionLogger
from ..utils.clock import Clock, monotonic


logger = logging.getLogger(__name__)

class SessionManager:
    """
    The headless core of a recording session.

    Owns the processor, the logger and the tick loop, and hands the finished
    log file to the uploader. Trial sequencing lives outside and talks to it
    through `update_status` and tick callbacks.
    """
    def __init__(
        self,
        settings: AppSettings,
        source: FrameSource,
        head_tracker: HeadTracker,
        ray_caster: Optional[RayCaster] = None,
        clock: Clock = monotonic,
        uploader: Optional[LogUploader] = None,
    ):
        self.settings = settings
        self.source = source
        self._clock = clock

        self.processor = GazeSignalProcessor.from_settings(source, settings.tracker, clock)
        self.session_log = SessionLogger.from_settings(settings.session_log, clock)
        self.recorder = GazeFieldRecorder(self.session_log, self.processor, head_tracker, ray_caster)
        self.recorder.register()
        self.uploader = uploader or LogUploader.from_settings(settings.upload)

        self.runner: Optional[TickRunner] = None
        self._callbacks: list[TickCallback] = []
        self.failed_uploads: list[Path] = []

    @property
    def is_recording(self) -> bool:
        """False once the tick loop has stopped, even if it crashed."""
        return self.runner is not None and self.runner.is_running

    def add_tick_callback(self, callback: TickCallback) -> None:
        self._callbacks.append(callback)
        if self.runner:
            self.runner.add_tick_callback(callback)

    def update_status(self, clip: int, attempt: int, undefined: bool = False) -> None:
        self.recorder.update_status(clip, attempt, undefined)

    # --- Actions ---

    async def start_recording(self) -> Optional[int]:
        """
        Opens the source, begins a log and starts ticking.
        Returns: the session serial, or None if recording could not start.
        """
        if self.runner:
            logger.warning("Recording already in progress.")
            return self.session_log.serial

        try:
            self.source.open()
            serial = self.session_log.begin()

            self.runner = TickRunner(
                self.processor,
                self.session_log,
                self.recorder,
                tick_rate_hz=self.settings.runner.tick_rate_hz,
                clock=self._clock,
            )
            for callback in self._callbacks:
                self.runner.add_tick_callback(callback)
            await self.runner.start()

            logger.info(f"Recording session {serial} started.")
            return serial

        except Exception:
            logger.exception("Failed to initialize recording session")
            self.runner = None
            self.session_log.end("Recording failed to start.")
            self.source.close()
            return None

    async def stop_recording(self, reason: Optional[str] = None) -> Optional[Path]:
        """
        Stops ticking and ends the log. A `reason` marks the log as incomplete.
        Returns: path of the finished log file.
        """
        if not self.runner:
            return self.session_log.file_path

        logger.info("Stopping recording session...")
        try:
            await self.runner.stop()
        except Exception as e:
            # The traceback was already logged when the loop died.
            reason = reason or f"Tick loop crashed: {e}"
            logger.error(f"Recording ended early: {reason}")
        finally:
            self.runner = None
            self.session_log.end(reason)
            self.source.close()

        file_path = self.session_log.file_path
        logger.info(f"Recording stopped. Log: {file_path}")

        url = self.settings.upload.server_url
        if url and file_path:
            self.uploader.upload_in_background(file_path, url, on_error=self._on_upload_failed)
        return file_path

    def _on_upload_failed(self, file_path: Path) -> None:
        logger.error(f"Upload of {file_path} failed; the file stays on disk.")
        self.failed_uploads.append(file_path)

    async def shutdown(self) -> None:
        """
        Graceful cleanup before application exit.
        """
        await self.stop_recording("Application shut down during recording.")
        await self.uploader.wait_closed()
