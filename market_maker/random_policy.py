"""Trade amount and interval sampling."""

from __future__ import annotations

import math
import random
from typing import Optional

from .config import EffectiveSettings


class RandomPolicy:
    """Sample trade amounts and next-tick intervals.

    With ``is_randomized`` off both methods return the lower bound. Pass a
    ``seed`` or your own :class:`random.Random` for reproducible runs.
    """

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random(seed)

    def next_amount(self, settings: EffectiveSettings) -> float:
        """Return an amount in ``[min_amount, max_amount)``."""
        low, high = settings.min_amount, settings.max_amount
        if not settings.is_randomized or high <= low:
            return low
        value = low + self._rng.random() * (high - low)
        # float rounding can land exactly on the upper bound
        return value if value < high else low

    def next_interval(self, settings: EffectiveSettings) -> int:
        """Return whole seconds in ``[min_interval, max_interval)``."""
        low, high = settings.min_interval, settings.max_interval
        if not settings.is_randomized or high <= low:
            return low
        return min(int(math.floor(low + self._rng.random() * (high - low))), high - 1)
