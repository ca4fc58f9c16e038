"""
Physics Engine Tests — penalty contact, friction, integration, shot preview.
"""

import sys
import os
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import physics as _phys
from physics import (
    Ball, PhysicsEngine, Plane, court_planes, gravity_vector,
    symplectic_euler, penalty_force, BALL_START, PENALTY_KS, PENALTY_KD,
)

GROUND = np.array([0.0, 0.0, 0.0])
UP = np.array([0.0, 1.0, 0.0])


# ── Helpers ──────────────────────────────────────────────

def make_ball(pos, vel=(0.0, 0.0, 0.0)) -> Ball:
    return Ball(position=list(pos), velocity=list(vel))


# ── Integration ──────────────────────────────────────────

class TestSymplecticEuler:

    def test_zero_force_carries_position(self):
        """Zero net force: velocity unchanged, pos' = pos + vel*dt."""
        pos = np.array([1.0, 2.0, 3.0])
        vel = np.array([0.5, -1.0, 2.0])
        acc, v2, p2 = symplectic_euler(pos, vel, np.zeros(3), 2.0, 0.01)
        np.testing.assert_array_equal(acc, np.zeros(3))
        np.testing.assert_array_equal(v2, vel)
        np.testing.assert_allclose(p2, pos + vel * 0.01)

    def test_position_uses_new_velocity(self):
        """Semi-implicit: the updated velocity moves the position."""
        acc, v2, p2 = symplectic_euler(np.zeros(3), np.zeros(3),
                                       np.array([0.0, 10.0, 0.0]), 1.0, 0.1)
        np.testing.assert_allclose(v2, [0.0, 1.0, 0.0])
        np.testing.assert_allclose(p2, [0.0, 0.1, 0.0])

    def test_inputs_not_mutated(self):
        pos = np.array([0.0, 1.0, 0.0])
        vel = np.array([1.0, 0.0, 0.0])
        symplectic_euler(pos, vel, np.array([3.0, 3.0, 3.0]), 1.0, 0.1)
        np.testing.assert_array_equal(pos, [0.0, 1.0, 0.0])
        np.testing.assert_array_equal(vel, [1.0, 0.0, 0.0])

    def test_ball_update_uses_accumulated_force(self):
        ball = make_ball([0.0, 5.0, 0.0], [1.0, 0.0, 0.0])
        ball.external_force = np.array([0.0, 2.0, 0.0])
        ball.update(0.5)
        np.testing.assert_allclose(ball.acceleration, [0.0, 2.0, 0.0])
        np.testing.assert_allclose(ball.velocity, [1.0, 1.0, 0.0])
        np.testing.assert_allclose(ball.position, [0.5, 5.5, 0.0])


# ── Penalty contact ──────────────────────────────────────

class TestPenaltyContact:

    def test_no_force_above_ground_at_rest(self):
        ball = make_ball([0.0, 5.0, 0.0])
        added = ball.calculate_force(GROUND, UP)
        np.testing.assert_array_equal(added, np.zeros(3))
        np.testing.assert_array_equal(ball.external_force, np.zeros(3))

    def test_penetrating_ball_pushed_up(self):
        ball = make_ball([0.0, -0.05, 0.0], [0.0, -1.0, 0.0])
        fn = penalty_force(GROUND, UP, ball.position, ball.velocity)
        assert np.dot(fn, UP) > 0

        ball.calculate_force(GROUND, UP)
        expected_y = PENALTY_KS * 0.05 + PENALTY_KD * 1.0
        np.testing.assert_allclose(ball.external_force, [0.0, expected_y, 0.0])

    def test_leaving_surface_fast_gets_no_pull(self):
        """Slightly inside but moving out fast: damper would pull back, so nothing is added."""
        ball = make_ball([0.0, -0.001, 0.0], [0.0, 5.0, 0.0])
        ball.calculate_force(GROUND, UP)
        np.testing.assert_array_equal(ball.external_force, np.zeros(3))

    def test_wall_force_points_inward(self):
        planes = {p.name: p for p in court_planes(10.0)}
        right = planes["right_wall"]
        ball = make_ball([10.02, 3.0, 0.0], [1.0, 0.0, 0.0])
        fn = ball.calculate_force(right.point, right.normal)
        assert fn[0] < 0
        assert fn[1] == 0 and fn[2] == 0

    def test_corner_forces_stack(self):
        """Ground and left-wall penalties are applied independently and add up."""
        engine = PhysicsEngine(half_size=10.0)
        ball = make_ball([-10.05, -0.05, 0.0])
        ball.external_force = np.zeros(3)
        for plane in engine.planes:
            ball.calculate_force(plane.point, plane.normal)
        expected = PENALTY_KS * 0.05
        np.testing.assert_allclose(ball.external_force, [expected, expected, 0.0])

    def test_engine_reports_contact_events(self):
        engine = PhysicsEngine()
        ball = make_ball([0.0, -0.01, 0.0])
        engine.update(ball, 0.001)
        assert [e["plane"] for e in engine.events] == ["ground"]
        assert engine.events[0]["force"] > 0

    def test_court_plane_order(self):
        names = [p.name for p in court_planes()]
        assert names == ["ground", "front_wall", "left_wall", "right_wall", "back_wall"]
        for p in court_planes():
            assert np.isclose(np.linalg.norm(p.normal), 1.0)


# ── Friction ─────────────────────────────────────────────

class TestFriction:

    def test_friction_opposes_horizontal_velocity(self):
        ball = make_ball([0.0, 0.0, 0.0], [2.0, -0.5, 1.0])
        f = ball.calculate_friction(gravity_vector())
        weight = ball.mass * _phys.GRAVITY
        np.testing.assert_allclose(f, [-2.0 * _phys.MU_KINETIC * weight, 0.0,
                                       -1.0 * _phys.MU_KINETIC * weight])
        np.testing.assert_allclose(ball.external_force, f)

    def test_no_friction_in_the_air(self):
        ball = make_ball([0.0, 0.5, 0.0], [2.0, 0.0, 0.0])
        f = ball.calculate_friction(gravity_vector())
        np.testing.assert_array_equal(f, np.zeros(3))
        np.testing.assert_array_equal(ball.external_force, np.zeros(3))

    @pytest.mark.parametrize("y", [-0.1, 0.1])
    def test_band_is_open_interval(self, y):
        ball = make_ball([0.0, y, 0.0], [1.0, 0.0, 0.0])
        assert not np.any(ball.calculate_friction(gravity_vector()))

    def test_rolling_ball_slows_down(self):
        engine = PhysicsEngine()
        ball = make_ball([0.0, 0.0, 0.0], [3.0, 0.0, 0.0])
        for _ in range(2000):
            engine.update(ball, 0.001)
        assert 0.0 < ball.velocity[0] < 3.0


# ── Ball lifecycle ───────────────────────────────────────

class TestBallState:

    def test_reset_defaults(self):
        ball = make_ball([4.0, 1.0, 2.0], [1.0, 1.0, 1.0])
        ball.external_force = np.array([1.0, 2.0, 3.0])
        ball.update_arc(0.001, np.zeros(3), 10)
        ball.reset()
        np.testing.assert_array_equal(ball.position, BALL_START)
        np.testing.assert_array_equal(ball.velocity, np.zeros(3))
        np.testing.assert_array_equal(ball.external_force, np.zeros(3))
        assert ball.arc is None

    def test_is_near(self):
        ball = make_ball([0.0, 6.4, -8.8])
        assert ball.is_near([0.0, 6.5, -8.8], 0.3)
        assert not ball.is_near([0.0, 6.5, -8.8], 0.05)

    def test_non_positive_mass_rejected(self):
        with pytest.raises(ValueError):
            Ball(mass=0.0)

    def test_dropped_ball_bounces_and_stays_above_floor(self):
        engine = PhysicsEngine()
        ball = make_ball([0.0, 2.0, 0.0])
        lowest = ball.position[1]
        went_up = False
        for _ in range(3000):
            vy_before = ball.velocity[1]
            engine.update(ball, 0.001)
            lowest = min(lowest, ball.position[1])
            if vy_before < 0 <= ball.velocity[1]:
                went_up = True
        assert went_up
        assert lowest > -0.2


# ── Shot preview ─────────────────────────────────────────

class TestArcPreview:

    def test_live_state_untouched(self):
        ball = Ball()
        pos, vel = ball.position.copy(), ball.velocity.copy()
        force = ball.external_force.copy()
        ball.update_arc(0.001, [0.0, 6000.0, -3000.0], 5000)
        np.testing.assert_array_equal(ball.position, pos)
        np.testing.assert_array_equal(ball.velocity, vel)
        np.testing.assert_array_equal(ball.external_force, force)

    def test_arc_starts_at_ball_and_ends_on_ground(self):
        ball = Ball()
        arc = ball.update_arc(0.001, [0.0, 5000.0, -1000.0], 5000)
        assert ball.arc is arc
        assert arc.size >= 3
        np.testing.assert_allclose(arc.points[0], ball.position)
        assert arc.points[-1][1] < 0.0
        # stopped early: far fewer waypoints than max_steps / interval
        assert arc.size < 5000 // _phys.ARC_SAMPLE_INTERVAL

    def test_launch_force_only_on_first_step(self):
        """Second waypoint velocity = launch + gravity over the elapsed steps."""
        ball = Ball()
        arc = ball.update_arc(0.001, [0.0, 5000.0, -1000.0], 5000)
        steps = _phys.ARC_SAMPLE_INTERVAL
        expected_vy = (5000.0 - _phys.GRAVITY) * 0.001 - _phys.GRAVITY * 0.001 * (steps - 1)
        np.testing.assert_allclose(arc.tangents[1][1], expected_vy, rtol=1e-9)
        np.testing.assert_allclose(arc.tangents[1][2], -1.0, rtol=1e-9)

    def test_max_steps_bounds_preview(self):
        ball = make_ball([0.0, 500.0, 0.0])
        arc = ball.update_arc(0.001, np.zeros(3), 250)
        # waypoints at k = 0, 100, 200 and no collision
        assert arc.size == 3

    def test_collision_detected_but_not_applied(self):
        ball = make_ball([0.0, 1.0, 0.0])
        assert ball.did_collide(GROUND, UP, [0.0, -0.01, 0.0])
        assert not ball.did_collide(GROUND, UP, [0.0, 0.5, 0.0])
        np.testing.assert_array_equal(ball.external_force, np.zeros(3))

    def test_collision_checks_every_wall(self):
        ball = make_ball([0.0, 1.0, 0.0])
        assert ball.collision([0.0, 1.0, -10.01])
        assert ball.collision([10.01, 1.0, 0.0])
        assert not ball.collision([0.0, 1.0, 0.0])

    def test_custom_planes(self):
        ball = make_ball([0.0, 1.0, 0.0])
        ceiling = [Plane("ceiling", [0.0, 2.0, 0.0], [0.0, -1.0, 0.0])]
        arc = ball.update_arc(0.001, [0.0, 8000.0, 0.0], 5000, planes=ceiling)
        assert arc.points[-1][1] > 2.0


class TestEngineSimulate:

    def test_external_force_first_tick_only(self):
        engine = PhysicsEngine()
        ball = make_ball([0.0, 5.0, 0.0])
        engine.update(ball, 0.001, [1000.0, 0.0, 0.0])
        vx = ball.velocity[0]
        engine.update(ball, 0.001)
        assert vx == pytest.approx(1.0)
        assert ball.velocity[0] == pytest.approx(vx)

    def test_simulate_returns_elapsed(self):
        engine = PhysicsEngine()
        ball = make_ball([0.0, 5.0, 0.0])
        elapsed = engine.simulate(ball, dt=0.001, max_time=0.1,
                                  external_force=[0.0, 0.0, -2000.0])
        assert elapsed == pytest.approx(0.1, abs=0.0011)
        assert ball.velocity[2] == pytest.approx(-2.0)
