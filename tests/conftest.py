"""Shared pytest configuration and fixtures for the gaze_session test suite."""

from pathlib import Path
from typing import Iterable, List, Optional, Union

import pytest

from gaze_session.acquisition import FrameSource
from gaze_session.errors import HardwareReadError
from gaze_session.models import RawFrame, SingleEyeData
from gaze_session.utils.clock import ManualClock


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as waiting on real wall-clock time"
    )


# =============================================================================
# Test Doubles
# =============================================================================

def make_eye(
    origin=(0.0, 0.0, 0.0),
    direction=(0.0, 0.0, 1.0),
    openness: float = 1.0,
    pupil: float = 3.0,
) -> SingleEyeData:
    return SingleEyeData(
        gaze_origin_mm=tuple(origin),
        gaze_direction=tuple(direction),
        openness=openness,
        pupil_diameter_mm=pupil,
    )


def make_frame(right_openness: float = 1.0, left_openness: float = 1.0, present: bool = True, **kwargs) -> RawFrame:
    """A frame of two eyes 60 mm apart, both looking straight ahead unless overridden."""
    right = kwargs.pop("right", None) or make_eye(origin=(-30.0, 0.0, 0.0), openness=right_openness)
    left = kwargs.pop("left", None) or make_eye(origin=(30.0, 0.0, 0.0), openness=left_openness)
    return RawFrame(right=right, left=left, combined=make_eye(), user_present=present)


class ScriptedFrameSource(FrameSource):
    """Hands out prepared frames in order; an exception in the script is raised instead."""

    def __init__(self, script: Iterable[Union[RawFrame, Exception]] = ()):
        super().__init__()
        self.script: List[Union[RawFrame, Exception]] = list(script)
        self.reads = 0
        self.released = False

    def push(self, item: Union[RawFrame, Exception]) -> None:
        self.script.append(item)

    def read(self) -> RawFrame:
        self.reads += 1
        if not self.script:
            raise HardwareReadError("Script exhausted.")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def _release(self) -> None:
        self.released = True


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def clock() -> ManualClock:
    """A clock starting at 100 s, advanced explicitly by the test."""
    return ManualClock(start=100.0)


@pytest.fixture
def source() -> ScriptedFrameSource:
    return ScriptedFrameSource()


@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    """Empty directory for log files; created lazily by the logger."""
    return tmp_path / "recordings"


@pytest.fixture
def write_log(tmp_path: Path):
    """Factory writing a tab separated log from a header and rows."""

    def _write(header: List[str], rows: List[List[str]], name: str = "001-test.txt", trailer: Optional[str] = None) -> Path:
        path = tmp_path / name
        lines = ["\t".join(header)] + ["\t".join(row) for row in rows]
        if trailer is not None:
            lines.append(trailer)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write
