import asyncio
import os
import time

import numpy as np
import pytest

from gaze_session.configs import AppSettings
from gaze_session.core import RECORDING_FIELDS
from gaze_session.errors import SchemaMismatchError
from gaze_session.models import EyeSource
from gaze_session.replay import SCHEMA_V1, SessionReplay, detect_schema

HEADER = ["time"] + [name for name, _ in RECORDING_FIELDS]


def row(elapsed, **values):
    """A log row with every field undefined except `values`."""
    return [f"{elapsed:.3f}"] + [str(values.get(name, "NA")) for name in HEADER[1:]]


def vector(base, x, y, z):
    return {base + "X": x, base + "Y": y, base + "Z": z}


class RecordingCuePlayer:
    def __init__(self):
        self.played = []

    def play(self, index: int) -> None:
        self.played.append(index)


class FirstCallClock:
    """time.monotonic, remembering its first reading as the replay start."""

    def __init__(self):
        self.start = None

    def __call__(self) -> float:
        now = time.monotonic()
        if self.start is None:
            self.start = now
        return now


class TestSchema:
    def test_resolves_by_name(self):
        reordered = ["time", "opennessLeft", "extra"] + [name for name in HEADER[1:] if name != "opennessLeft"]
        columns = SCHEMA_V1.resolve(reordered)
        assert columns["opennessLeft"] == 1
        assert columns.width == len(reordered)

    def test_missing_column(self):
        header = [name for name in HEADER if name != "focusY"]
        with pytest.raises(SchemaMismatchError, match="focusY"):
            SCHEMA_V1.resolve(header)

    def test_time_must_come_first(self):
        with pytest.raises(SchemaMismatchError):
            SCHEMA_V1.resolve(HEADER[1:] + ["time"])

    def test_detect(self):
        assert detect_schema(HEADER).schema is SCHEMA_V1


@pytest.mark.asyncio
class TestSessionReplay:
    async def test_markers_openness_and_rotation(self, write_log):
        path = write_log(HEADER, [
            row(0.0, clip=0, **vector("head", 0, 1.6, 0), **vector("view", 0, 1.6, 1), **vector("up", 0, 1, 0),
                opennessRight=0.9, opennessLeft=0.2),
        ])

        state = await SessionReplay(path).run()

        np.testing.assert_allclose(state.markers["head"], [0, 1.6, 0])
        np.testing.assert_allclose(state.head_rotation, np.eye(3), atol=1e-12)
        assert state.eye_openness == {EyeSource.RIGHT: 0.9, EyeSource.LEFT: 0.2}
        assert state.rows_applied == 1
        assert state.schema_version == 1

    async def test_undefined_values_keep_previous_state(self, write_log):
        path = write_log(HEADER, [
            row(0.0, **vector("focus", 1, 2, 3), opennessRight=0.5),
            row(0.01, focusX=9),
            row(0.02),
        ])

        state = await SessionReplay(path).run()

        np.testing.assert_allclose(state.markers["focus"], [1, 2, 3])
        assert state.eye_openness[EyeSource.RIGHT] == 0.5
        assert "hitRight" not in state.markers
        assert state.rows_applied == 3

    async def test_rows_apply_in_order_and_never_early(self, write_log):
        times = [0.0, 0.05, 0.05, 0.1, 0.15]
        path = write_log(HEADER, [row(t, clip=i) for i, t in enumerate(times)])
        clock = FirstCallClock()
        applied = []

        def on_frame(state):
            applied.append((state.cue, time.monotonic() - clock.start))

        await SessionReplay(path, on_frame=on_frame, clock=clock).run()

        assert [cue for cue, _ in applied] == list(range(len(times)))
        for (_, at), due in zip(applied, times):
            assert at >= due

    async def test_cue_plays_only_on_change(self, write_log):
        path = write_log(HEADER, [
            row(0.0, clip=0),
            row(0.0, clip=0),
            row(0.0),
            row(0.0, clip=1),
            row(0.0, clip=1),
            row(0.0, clip=0),
        ])
        cues = RecordingCuePlayer()

        state = await SessionReplay(path, cue_player=cues).run()

        assert cues.played == [0, 1, 0]
        assert state.cue == 0

    async def test_broken_rows_are_skipped(self, write_log):
        short = row(0.0, clip=1)[:-3]
        bad_time = row(0.0, clip=2)
        bad_time[0] = "soon"
        bad_number = row(0.0, clip=3, opennessRight="wide")
        path = write_log(
            HEADER,
            [row(0.0, clip=0), short, bad_time, bad_number, row(0.0, clip=4)],
            trailer="Application closed during recording.",
        )
        cues = RecordingCuePlayer()

        state = await SessionReplay(path, cue_player=cues).run()

        assert cues.played == [0, 4]
        assert state.rows_applied == 2
        assert state.rows_skipped == 4

    async def test_schema_mismatch_is_rejected_before_rows(self, write_log):
        path = write_log(["time", "clip"], [["0.000", "1"]])
        cues = RecordingCuePlayer()

        with pytest.raises(SchemaMismatchError):
            await SessionReplay(path, cue_player=cues).run()
        assert cues.played == []

    async def test_stop(self, write_log):
        path = write_log(HEADER, [row(0.0, clip=0), row(0.05, clip=1), row(5.0, clip=2)])
        replay = None

        def on_frame(state):
            if state.cue == 1:
                replay.stop()

        replay = SessionReplay(path, on_frame=on_frame)
        state = await asyncio.wait_for(replay.run(), timeout=2.0)

        assert state.cue == 1
        assert state.rows_applied == 2

    async def test_stop_while_waiting(self, write_log):
        path = write_log(HEADER, [row(0.0, clip=0), row(10.0, clip=1)])
        replay = SessionReplay(path)

        task = asyncio.create_task(replay.run())
        await asyncio.sleep(0.05)
        replay.stop()
        state = await asyncio.wait_for(task, timeout=1.0)

        assert state.rows_applied == 1

    async def test_falls_back_to_newest_log(self, tmp_path, write_log):
        older = write_log(HEADER, [row(0.0, clip=1)], name="001-a.txt")
        newer = write_log(HEADER, [row(0.0, clip=2)], name="002-b.txt")
        os.utime(older, (1_000, 1_000))
        os.utime(newer, (2_000, 2_000))

        replay = SessionReplay(tmp_path / "missing.txt", log_directory=tmp_path)

        assert replay.resolve_path() == newer
        assert (await replay.run()).cue == 2

    async def test_no_logs_yet(self, tmp_path):
        state = await SessionReplay(log_directory=tmp_path / "empty").run()
        assert state.rows_applied == 0

    async def test_from_settings(self, tmp_path, write_log):
        path = write_log(HEADER, [row(0.0, clip=5)])
        settings = AppSettings(replay={"log_path": path}, session_log={"directory": tmp_path})

        state = await SessionReplay.from_settings(settings).run()

        assert state.cue == 5
