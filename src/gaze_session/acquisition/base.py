from abc import ABC, abstractmethod
from typing import final

from gaze_session.models.gaze import RawFrame


class FrameSource(ABC):
    """
    Abstract Base Class for all eye tracking frame sources.

    A FrameSource is polled once per tick and hands out the most recent
    `RawFrame` from a specific origin (e.g., hardware, simulation). It is the
    only place that knows about a tracking SDK.
    """

    def __init__(self) -> None:
        self._opened = False

    @property
    def is_open(self) -> bool:
        return self._opened

    @abstractmethod
    def read(self) -> RawFrame:
        """
        Returns the latest frame.

        Raises:
            HardwareReadError: if no valid frame is available for this tick.
                Callers keep their previous values and carry on.
        """
        raise NotImplementedError

    def open(self) -> None:
        """Acquire hardware resources. Subclasses extend this as needed."""
        self._opened = True

    @final
    def close(self) -> None:
        """
        Releases the source.

        This is a final method and should not be overridden. Subclasses can
        perform cleanup in `_release`.
        """
        if self._opened:
            self._release()
            self._opened = False

    def _release(self) -> None:
        pass

    def __enter__(self) -> "FrameSource":
        self.open()
        return self

    def __exit__(self, *exc) -> None:
        self.close()
