"""Rolling timing statistics for generation metrics."""

import numpy as np


class RollingStats:
    """Percentiles over the most recent ``window`` samples.

    Samples live in a fixed numpy ring buffer, so recording never allocates.
    """

    def __init__(self, window: int = 100) -> None:
        if window < 1:
            raise ValueError(f"window must be positive, got {window}")
        self.window = window
        self._buffer = np.zeros(window, dtype=np.float64)
        self._next = 0
        self.total_recorded = 0

    def record(self, value: float) -> None:
        self._buffer[self._next] = value
        self._next = (self._next + 1) % self.window
        self.total_recorded += 1

    @property
    def count(self) -> int:
        return min(self.total_recorded, self.window)

    def samples(self) -> np.ndarray:
        """Samples currently in the window, oldest first."""
        if self.total_recorded <= self.window:
            return self._buffer[: self.total_recorded]
        return np.roll(self._buffer, -self._next)

    @property
    def latest(self) -> float | None:
        if self.total_recorded == 0:
            return None
        return float(self._buffer[self._next - 1])

    @property
    def mean(self) -> float:
        window = self.samples()
        return float(window.mean()) if len(window) else 0.0

    @property
    def peak(self) -> float:
        window = self.samples()
        return float(window.max()) if len(window) else 0.0

    def percentiles(self) -> tuple[float, float, float]:
        """(p50, p95, p99) of the window, zeros when empty."""
        window = self.samples()
        if len(window) == 0:
            return (0.0, 0.0, 0.0)
        p50, p95, p99 = np.percentile(window, [50, 95, 99])
        return (float(p50), float(p95), float(p99))

    @property
    def p50(self) -> float:
        return self.percentiles()[0]

    @property
    def p95(self) -> float:
        return self.percentiles()[1]

    @property
    def p99(self) -> float:
        return self.percentiles()[2]

    def summary(self) -> str:
        if self.total_recorded == 0:
            return "no samples"
        p50, p95, p99 = self.percentiles()
        return f"p50={p50:.2f} p95={p95:.2f} p99={p99:.2f} max={self.peak:.2f}"
