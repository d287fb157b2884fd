"""Wink classification and the certainty heuristic built on its recent history."""
from __future__ import annotations

from dataclasses import dataclass
from itertools import pairwise
from typing import Sequence

from ..models import EyeSample, WinkState


def classify_wink(sample: EyeSample, threshold: float) -> WinkState:
    """
    A wink is assumed if the openness difference between both eyes exceeds
    the threshold. The more closed eye is the one that winks.
    """
    if sample.difference > threshold:
        return WinkState.LEFT if sample.right_openness > sample.left_openness else WinkState.RIGHT
    return WinkState.NONE


@dataclass(frozen=True)
class WinkCertaintyPolicy:
    """
    Rates how much the current wink classification can be trusted, based on
    the classifications found in the buffered history.

    The constants are empirical and strongly favour keeping an active wink
    while suppressing short drops. They are not known to be optimal.

    Attributes:
        hold_similarity: An active wink is fully certain once more than this
            fraction of the history agrees with it.
        min_samples: History length needed before any rating is attempted.
    """
    hold_similarity: float = 0.1
    min_samples: int = 3

    def similarity(self, state: WinkState, history: Sequence[EyeSample], threshold: float) -> float:
        """Fraction of history samples whose classification equals `state`."""
        matches = sum(1 for sample in history if classify_wink(sample, threshold) is state)
        return matches / len(history)

    def fluctuation_center(
        self,
        history: Sequence[EyeSample],
        threshold: float,
        now: float,
        window_seconds: float,
    ) -> float:
        """
        Temporal center of classification changes within the history.

        1.0 means the changes happened right now, 0.0 means they happened a full
        window ago. Without any change the center sits a full window ago.
        This is the reverse of the "1.0 = oldest edge" reading; the formula wins
        because it is what lets certainty suppress brief drops.
        """
        classified = [(sample, classify_wink(sample, threshold)) for sample in history]
        change_times = [
            sample.timestamp
            for (_, prev_state), (sample, state) in pairwise(classified)
            if state is not prev_state
        ]
        if change_times:
            average = sum(change_times) / len(change_times)
        else:
            average = now - window_seconds
        return 1.0 - (now - average) / window_seconds

    def certainty(
        self,
        state: WinkState,
        history: Sequence[EyeSample],
        threshold: float,
        now: float,
        window_seconds: float,
    ) -> float:
        similarity, center = 0.0, 1.0
        if len(history) >= self.min_samples:
            similarity = self.similarity(state, history, threshold)
            center = self.fluctuation_center(history, threshold, now, window_seconds)

        if state is not WinkState.NONE and similarity > self.hold_similarity:
            return 1.0
        return min(1.0, max(0.0, similarity - center))
