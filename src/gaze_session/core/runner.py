import asyncio
import logging
from typing import Callable, List, Optional

from ..processing import GazeSignalProcessor
from ..sinks import SessionLogger
from ..utils.clock import Clock, monotonic
from .fields import GazeFieldRecorder

logger = logging.getLogger(__name__)

TickCallback = Callable[[float], None]


class TickRunner:
    """
    Drives the single recording timeline at a fixed tick rate.

    Every tick runs, in order: processor update, tick callbacks, field
    recording and the logger flush. Nothing else mutates the processor or
    the logger, so no locking is needed. Created fresh for every session.
    """
    def __init__(
        self,
        processor: GazeSignalProcessor,
        session_log: SessionLogger,
        recorder: Optional[GazeFieldRecorder] = None,
        tick_rate_hz: float = 90.0,
        clock: Clock = monotonic,
    ):
        if tick_rate_hz <= 0:
            raise ValueError("tick_rate_hz must be positive.")
        self.processor = processor
        self.session_log = session_log
        self.recorder = recorder
        self.interval_s = 1.0 / tick_rate_hz
        self._clock = clock
        self._callbacks: List[TickCallback] = []
        self._stop_event = asyncio.Event()
        self._loop_task: asyncio.Task | None = None
        self.ticks = 0

    def add_tick_callback(self, callback: TickCallback) -> None:
        """`callback(tick_seconds)` runs after the processor update and before recording."""
        self._callbacks.append(callback)

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def step(self, tick_seconds: float) -> None:
        """Runs one complete tick."""
        self.processor.update()
        for callback in self._callbacks:
            callback(tick_seconds)
        if self.recorder is not None:
            self.recorder.record()
        self.session_log.flush(tick_seconds)
        self.ticks += 1

    async def run(self, max_ticks: Optional[int] = None) -> None:
        """
        Ticks until `stop()` is called or `max_ticks` ticks have run.

        Tick deadlines are computed from the start time, so a late tick does
        not push all following ticks back.
        """
        start_time = self._clock()
        last_time = start_time
        tick = 0

        try:
            while not self._stop_event.is_set():
                if max_ticks is not None and tick >= max_ticks:
                    break

                now = self._clock()
                self.step(now - last_time if tick else self.interval_s)
                last_time = now
                tick += 1

                # Sleep until the next tick's target time; always yield once.
                sleep_duration = start_time + tick * self.interval_s - self._clock()
                await asyncio.sleep(max(0.0, sleep_duration))

        except asyncio.CancelledError:
            logger.info("Tick loop cancelled.")
            raise
        finally:
            logger.debug(f"Tick loop finished after {tick} ticks.")

    async def start(self) -> None:
        if self.is_running:
            return
        logger.info(f"Starting tick loop at {1.0 / self.interval_s:.1f} Hz...")
        self._stop_event.clear()
        self._loop_task = asyncio.create_task(self.run())
        self._loop_task.add_done_callback(self._on_loop_done)

    def _on_loop_done(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Tick loop crashed", exc_info=task.exception())

    async def stop(self) -> None:
        """
        Stops the loop and waits for it. If the loop died on its own, its
        exception is raised here.
        """
        if self._loop_task is None:
            return
        logger.info("Stopping tick loop...")
        self._stop_event.set()
        try:
            await self._loop_task
        finally:
            self._loop_task = None
