"""
Splines used to draw and predict the shot trajectory.

The line renderer only ever sees a position function t -> vec3 plus a sample
count (see sample_curve); it re-evaluates the function whenever the preview
changes.
"""

import math
import numpy as np


def h00(t: float) -> float:
    return 2 * t ** 3 - 3 * t ** 2 + 1


def h10(t: float) -> float:
    return t ** 3 - 2 * t ** 2 + t


def h01(t: float) -> float:
    return -2 * t ** 3 + 3 * t ** 2


def h11(t: float) -> float:
    return t ** 3 - t ** 2


def sample_curve(curve_fn, sample_count: int) -> np.ndarray:
    """Evaluate curve_fn at sample_count + 1 evenly spaced t in [0, 1]."""
    if sample_count < 1:
        raise ValueError(f"sample_count must be >= 1, got {sample_count}")
    return np.array([curve_fn(i / sample_count) for i in range(sample_count + 1)],
                    dtype=float)


class Spline:
    """Ordered (point, tangent) waypoints with piecewise-linear interpolation."""

    def __init__(self):
        self.points: list = []
        self.tangents: list = []

    @property
    def size(self) -> int:
        return len(self.points)

    def add_point(self, position, tangent=(0.0, 0.0, 0.0)) -> None:
        self.points.append(np.array(position, dtype=float))
        self.tangents.append(np.array(tangent, dtype=float))

    def set_point(self, index: int, position) -> None:
        self.points[index] = np.array(position, dtype=float)

    def set_tangent(self, index: int, tangent) -> None:
        self.tangents[index] = np.array(tangent, dtype=float)

    def _segment(self, t: float):
        """Map t in [0, 1] to (A, B, s): bounding waypoint indices + local fraction."""
        t = min(1.0, max(0.0, float(t)))
        u = t * (self.size - 1)
        return math.floor(u), math.ceil(u), u % 1.0

    def get_position(self, t: float) -> np.ndarray:
        if self.size < 2:
            return np.zeros(3)
        a, b, s = self._segment(t)
        return self.points[a] * (1 - s) + self.points[b] * s

    def sample(self, sample_count: int) -> np.ndarray:
        return sample_curve(self.get_position, sample_count)


class HermiteSpline(Spline):
    """
    Cubic Hermite interpolation over uniformly parametrized segments.

    Tangents are scaled by 1/n (n = number of waypoints) rather than by the
    true segment length.
    """

    def get_position(self, t: float) -> np.ndarray:
        n = self.size
        if n < 2:
            return np.zeros(3)
        a, b, s = self._segment(t)
        pa, pb = self.points[a], self.points[b]
        ma, mb = self.tangents[a] * (1 / n), self.tangents[b] * (1 / n)
        return pa * h00(s) + ma * h10(s) + pb * h01(s) + mb * h11(s)
