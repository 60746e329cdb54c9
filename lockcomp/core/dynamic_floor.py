import math

import numpy as np


class DynamicFloor:
    """
    Sliding-window minimum RTT, scaled into a correction floor.

    floor = clamp(MinRTT * scaling_factor, MINIMUM_FLOOR, DEFAULT_FLOOR)
    Falls back to DEFAULT_FLOOR until MIN_SAMPLES round trips were observed,
    so the adaptive value can only ever tighten the legacy 40ms floor.
    """

    DEFAULT_FLOOR = 0.04
    MINIMUM_FLOOR = 0.01
    MIN_WINDOW = 10
    MIN_SAMPLES = 5

    def __init__(self, window_size: int = 100, scaling_factor: float = 0.85):
        self._samples = np.zeros(max(int(window_size), self.MIN_WINDOW), dtype=np.float64)
        self._head = 0
        self._count = 0
        self._cached_min = math.inf
        self._dirty = True
        self.scaling_factor = scaling_factor

    @property
    def window_size(self) -> int:
        return len(self._samples)

    @property
    def sample_count(self) -> int:
        return self._count

    @property
    def has_sufficient_data(self) -> bool:
        return self._count >= self.MIN_SAMPLES

    def add_sample(self, rtt: float) -> None:
        if rtt <= 0 or not math.isfinite(rtt):
            return

        self._samples[self._head] = rtt
        self._head = (self._head + 1) % len(self._samples)
        if self._count < len(self._samples):
            self._count += 1
        self._dirty = True

    @property
    def min_rtt(self) -> float:
        if not self._dirty:
            return self._cached_min
        if self._count == 0:
            self._cached_min = math.inf
        else:
            # Slots [0, count) are always the filled ones (head starts at 0)
            self._cached_min = float(self._samples[:self._count].min())
        self._dirty = False
        return self._cached_min

    @property
    def floor(self) -> float:
        if not self.has_sufficient_data:
            return self.DEFAULT_FLOOR

        computed = self.min_rtt * self.scaling_factor
        return max(min(computed, self.DEFAULT_FLOOR), self.MINIMUM_FLOOR)

    def reset(self) -> None:
        self._head = 0
        self._count = 0
        self._cached_min = math.inf
        self._dirty = True
