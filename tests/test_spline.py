"""
Spline Tests — basis functions, waypoint mapping, Hermite preview curve.
"""

import sys
import os
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from spline import Spline, HermiteSpline, sample_curve, h00, h10, h01, h11


def make_curve(cls, points, tangents=None):
    curve = cls()
    for i, p in enumerate(points):
        if tangents is None:
            curve.add_point(p)
        else:
            curve.add_point(p, tangents[i])
    return curve


class TestBasis:

    def test_endpoint_values(self):
        assert (h00(0), h10(0), h01(0), h11(0)) == (1, 0, 0, 0)
        assert (h00(1), h10(1), h01(1), h11(1)) == (0, 0, 1, 0)

    def test_position_weights_sum_to_one(self):
        for t in np.linspace(0.0, 1.0, 11):
            assert h00(t) + h01(t) == pytest.approx(1.0)


class TestHermiteSpline:

    def test_fewer_than_two_points_is_origin(self):
        curve = HermiteSpline()
        np.testing.assert_array_equal(curve.get_position(0.5), np.zeros(3))
        curve.add_point([1.0, 2.0, 3.0], [1.0, 0.0, 0.0])
        np.testing.assert_array_equal(curve.get_position(0.5), np.zeros(3))

    def test_hits_first_and_last_waypoint(self):
        pts = [[0.0, 0.0, 0.0], [1.0, 2.0, 0.0], [3.0, 1.0, -1.0]]
        curve = make_curve(HermiteSpline, pts, [[1.0, 1.0, 1.0]] * 3)
        np.testing.assert_allclose(curve.get_position(0.0), pts[0])
        np.testing.assert_allclose(curve.get_position(1.0), pts[-1])

    def test_interior_knot_is_exact(self):
        pts = [[0.0, 0.0, 0.0], [1.0, 2.0, 0.0], [3.0, 1.0, -1.0]]
        curve = make_curve(HermiteSpline, pts, [[5.0, 0.0, 0.0]] * 3)
        np.testing.assert_allclose(curve.get_position(0.5), pts[1])

    def test_midpoint_with_zero_tangents(self):
        curve = make_curve(HermiteSpline, [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]])
        np.testing.assert_allclose(curve.get_position(0.5), [0.5, 0.0, 0.0])

    def test_tangents_scaled_by_point_count(self):
        """One tangent of (0, 1, 0) over two points bends the midpoint by h10(0.5)/2."""
        curve = make_curve(HermiteSpline, [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]],
                           [[0.0, 1.0, 0.0], [0.0, 0.0, 0.0]])
        mid = curve.get_position(0.5)
        assert mid[1] == pytest.approx(h10(0.5) / 2)

    def test_parameter_is_clamped(self):
        pts = [[0.0, 0.0, 0.0], [2.0, 0.0, 0.0]]
        curve = make_curve(HermiteSpline, pts)
        np.testing.assert_allclose(curve.get_position(-0.5), pts[0])
        np.testing.assert_allclose(curve.get_position(1.5), pts[1])


class TestLinearSpline:

    def test_quarter_point(self):
        curve = make_curve(Spline, [[0.0, 0.0, 0.0], [4.0, 0.0, 0.0]])
        np.testing.assert_allclose(curve.get_position(0.25), [1.0, 0.0, 0.0])

    def test_set_point_and_tangent(self):
        curve = make_curve(Spline, [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]])
        curve.set_point(1, [2.0, 2.0, 2.0])
        curve.set_tangent(0, [0.0, 1.0, 0.0])
        np.testing.assert_array_equal(curve.points[1], [2.0, 2.0, 2.0])
        np.testing.assert_array_equal(curve.tangents[0], [0.0, 1.0, 0.0])
        assert curve.size == 2

    def test_add_point_copies_input(self):
        p = np.array([1.0, 1.0, 1.0])
        curve = Spline()
        curve.add_point(p)
        p[0] = 99.0
        assert curve.points[0][0] == 1.0


class TestSampling:

    def test_sample_count_plus_one_rows(self):
        curve = make_curve(HermiteSpline, [[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]])
        samples = curve.sample(10)
        assert samples.shape == (11, 3)
        np.testing.assert_allclose(samples[0], [0.0, 0.0, 0.0])
        np.testing.assert_allclose(samples[-1], [1.0, 1.0, 1.0])

    def test_any_callable(self):
        samples = sample_curve(lambda t: (t, 2 * t, 0.0), 4)
        np.testing.assert_allclose(samples[:, 1], [0.0, 0.5, 1.0, 1.5, 2.0])

    def test_rejects_zero_samples(self):
        with pytest.raises(ValueError):
            sample_curve(lambda t: (0.0, 0.0, 0.0), 0)
