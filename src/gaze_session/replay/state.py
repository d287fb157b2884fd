from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from ..models import EyeSource


@dataclass(frozen=True, slots=True)
class ReplayFrame:
    """One log row, split but not yet interpreted."""
    line_number: int
    elapsed: float
    values: tuple[str, ...]


@dataclass
class ReplayState:
    """
    Everything reconstructed from a log so far.

    Values only change when a row carries a defined value for them, so each
    entry holds the last known state.
    """
    markers: dict[str, np.ndarray] = field(default_factory=dict)
    # Columns are the head's right, up and forward axes.
    head_rotation: Optional[np.ndarray] = None
    eye_openness: dict[EyeSource, float] = field(default_factory=dict)
    cue: Optional[int] = None
    elapsed: float = 0.0
    rows_applied: int = 0
    rows_skipped: int = 0
    schema_version: Optional[int] = None

    def marker(self, name: str) -> Optional[np.ndarray]:
        return self.markers.get(name)
