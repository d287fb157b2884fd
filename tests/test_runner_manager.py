import asyncio
from pathlib import Path

import pytest

from conftest import ScriptedFrameSource, make_frame
from gaze_session.acquisition import DummyFrameSource, StaticHeadTracker, WallRayCaster
from gaze_session.configs import AppSettings
from gaze_session.core import RECORDING_FIELDS, Field, GazeFieldRecorder, SessionManager, TickRunner
from gaze_session.errors import HardwareReadError
from gaze_session.processing import GazeSignalProcessor
from gaze_session.sinks import SessionLogger

HEADER = "\t".join(["time"] + [name for name, _ in RECORDING_FIELDS])


def read_rows(path: Path):
    lines = path.read_text(encoding="utf-8").splitlines()
    return lines[0], [line.split("\t") for line in lines[1:]]


@pytest.fixture
def settings(log_dir):
    return AppSettings(session_log={"directory": log_dir}, runner={"tick_rate_hz": 200})


class TestTickRunner:
    @pytest.fixture
    def parts(self, source, clock, log_dir):
        processor = GazeSignalProcessor(source, clock=clock)
        session_log = SessionLogger(log_dir, clock=clock)
        recorder = GazeFieldRecorder(session_log, processor, StaticHeadTracker(), WallRayCaster())
        recorder.register()
        return processor, session_log, recorder

    def test_step_order(self, parts, source, clock):
        processor, session_log, recorder = parts
        runner = TickRunner(processor, session_log, recorder, clock=clock)
        seen = []
        runner.add_tick_callback(lambda dt: seen.append((dt, processor.get_eye_openness())))
        runner.add_tick_callback(lambda dt: session_log.update_field(Field.CLIP, 3))

        session_log.begin()
        source.push(make_frame(0.8, 0.8))
        clock.advance(0.5)
        runner.step(0.01)
        session_log.end()

        # The callback already saw the processor's new frame.
        assert seen == [(0.01, 0.8)]
        header, rows = read_rows(session_log.file_path)
        assert header == HEADER
        assert len(rows) == 1
        values = dict(zip(header.split("\t"), rows[0]))
        assert values["time"] == "0.500"
        assert values["clip"] == "3"
        assert values["opennessRight"] == "0.8"
        assert (values["headX"], values["headY"], values["headZ"]) == ("0.0000", "1.6000", "0.0000")
        assert (values["viewX"], values["viewY"], values["viewZ"]) == ("0.0000", "1.6000", "1.0000")
        assert values["colliderRight"] == "wall"
        assert runner.ticks == 1

    def test_hardware_error_does_not_abort_tick(self, parts, source, clock):
        processor, session_log, recorder = parts
        runner = TickRunner(processor, session_log, recorder, clock=clock)
        session_log.begin()
        source.push(make_frame(0.8, 0.8))
        source.push(HardwareReadError("gone"))

        runner.step(0.01)
        clock.advance(0.01)
        runner.step(0.01)
        session_log.end()

        _, rows = read_rows(session_log.file_path)
        assert len(rows) == 2
        # Stale openness from the previous frame is still logged.
        index = HEADER.split("\t").index("opennessRight")
        assert rows[1][index] == "0.8"

    def test_invalid_rate(self, parts):
        processor, session_log, _ = parts
        with pytest.raises(ValueError):
            TickRunner(processor, session_log, tick_rate_hz=0)

    @pytest.mark.asyncio
    async def test_run_max_ticks(self, parts):
        processor, session_log, recorder = parts
        runner = TickRunner(processor, session_log, recorder, tick_rate_hz=1000)
        ticks = []
        runner.add_tick_callback(ticks.append)

        await asyncio.wait_for(runner.run(max_ticks=5), timeout=2.0)

        assert runner.ticks == 5
        assert ticks[0] == pytest.approx(0.001)

    @pytest.mark.asyncio
    async def test_start_stop(self, parts):
        processor, session_log, recorder = parts
        runner = TickRunner(processor, session_log, recorder, tick_rate_hz=500)

        await runner.start()
        assert runner.is_running
        await asyncio.sleep(0.05)
        await runner.stop()

        assert not runner.is_running
        assert runner.ticks > 0

    @pytest.mark.asyncio
    async def test_stop_raises_when_loop_crashed(self, parts):
        processor, session_log, recorder = parts
        runner = TickRunner(processor, session_log, recorder, tick_rate_hz=500)

        def explode(dt):
            raise RuntimeError("boom")

        runner.add_tick_callback(explode)
        await runner.start()
        await asyncio.sleep(0.02)
        assert not runner.is_running

        with pytest.raises(RuntimeError, match="boom"):
            await runner.stop()
        # A second stop has nothing left to wait for.
        await runner.stop()


class FakeUploader:
    def __init__(self):
        self.calls = []
        self.closed = False

    def upload_in_background(self, file_path, url, on_error=None):
        self.calls.append((file_path, url))
        on_error(file_path)

    async def wait_closed(self):
        self.closed = True


@pytest.mark.asyncio
class TestSessionManager:
    async def test_record_with_dummy_source(self, settings):
        manager = SessionManager(settings, DummyFrameSource(), StaticHeadTracker(), WallRayCaster())

        serial = await manager.start_recording()
        assert serial == 1
        assert manager.is_recording
        manager.update_status(clip=2, attempt=1)
        await asyncio.sleep(0.1)
        path = await manager.stop_recording()

        assert not manager.is_recording
        assert not manager.source.is_open
        header, rows = read_rows(path)
        assert header == HEADER
        assert rows
        width = len(header.split("\t"))
        assert all(len(row) == width for row in rows)
        assert rows[-1][1:3] == ["2", "1"]

    async def test_start_failure(self, settings):
        class BrokenSource(ScriptedFrameSource):
            def open(self):
                raise HardwareReadError("no tracker connected")

        manager = SessionManager(settings, BrokenSource(), StaticHeadTracker())

        assert await manager.start_recording() is None
        assert not manager.is_recording
        assert not manager.session_log.is_logging

    async def test_shutdown_marks_log_incomplete(self, settings):
        manager = SessionManager(settings, DummyFrameSource(), StaticHeadTracker())
        await manager.start_recording()
        await asyncio.sleep(0.02)

        await manager.shutdown()

        lines = manager.session_log.file_path.read_text(encoding="utf-8").splitlines()
        assert lines[-1] == "Application shut down during recording."

    async def test_finished_log_is_handed_to_uploader(self, log_dir):
        settings = AppSettings(session_log={"directory": log_dir}, upload={"server_url": "https://example.invalid/upload"})
        uploader = FakeUploader()
        manager = SessionManager(settings, DummyFrameSource(), StaticHeadTracker(), uploader=uploader)

        await manager.start_recording()
        path = await manager.stop_recording()
        await manager.shutdown()

        assert uploader.calls == [(path, "https://example.invalid/upload")]
        assert manager.failed_uploads == [path]
        assert uploader.closed

    async def test_no_upload_without_url(self, settings):
        uploader = FakeUploader()
        manager = SessionManager(settings, DummyFrameSource(), StaticHeadTracker(), uploader=uploader)
        await manager.start_recording()
        await manager.stop_recording()
        assert uploader.calls == []

    async def test_crashed_tick_loop_marks_log_incomplete(self, settings):
        manager = SessionManager(settings, DummyFrameSource(), StaticHeadTracker())
        ticks = []

        def failing_callback(dt):
            ticks.append(dt)
            if len(ticks) == 3:
                raise RuntimeError("callback failed")

        manager.add_tick_callback(failing_callback)
        await manager.start_recording()
        for _ in range(100):
            if not manager.is_recording:
                break
            await asyncio.sleep(0.01)
        assert not manager.is_recording

        path = await manager.stop_recording()

        assert path.read_text(encoding="utf-8").splitlines()[-1] == "Tick loop crashed: callback failed"
        assert not manager.source.is_open
