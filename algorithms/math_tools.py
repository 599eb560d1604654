from typing import Iterable, Sequence, Tuple

import numpy as np


class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    WEEKS_PER_MONTH: float = 4.3

    @staticmethod
    def volume(sets: Iterable[Tuple[int, float]]) -> float:
        """Compute training volume as the sum of reps times weight."""
        pairs = list(sets)
        if not pairs:
            return 0.0
        r, w = np.array(pairs, dtype=float).T
        return float(np.sum(r * w))

    @staticmethod
    def mean(values: Sequence[float]) -> float:
        """Return the arithmetic mean or 0.0 for no values."""
        if len(values) == 0:
            return 0.0
        return float(np.mean(np.array(values, dtype=float)))

    @staticmethod
    def percentage_share(part: float, total: float) -> float:
        """Return ``part`` as a percentage of ``total``."""
        if total <= 0:
            raise ValueError("total must be positive")
        return part / total * 100.0

    @classmethod
    def weekly_frequency(cls, sessions: int) -> float:
        """Convert a monthly session count to sessions per week."""
        if sessions < 0:
            raise ValueError("sessions must be non-negative")
        return sessions / cls.WEEKS_PER_MONTH
