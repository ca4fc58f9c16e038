"""
Basketball Court Physics Engine
Penalty-based ball/plane contact, ground friction, symplectic Euler,
and forward-simulated shot preview.
"""

import logging
import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional

from spline import HermiteSpline

logger = logging.getLogger("hoopsim.physics")

# ──────────────────────────────────────────────
# Constants (SI units)
# ──────────────────────────────────────────────
GRAVITY: float = 9.8  # m/s^2
BALL_MASS: float = 1.0  # kg
BALL_RADIUS: float = 0.037  # m
BALL_START: tuple = (0.0, 3.5, 0.0)

# Court: ground at y = 0, four walls at |x| = |z| = COURT_HALF_SIZE
COURT_HALF_SIZE: float = 10.0

# ── Runtime-editable behavior constants ───────────────────────────────────────
# Read by name on every call, so the server can mutate them live via:
#   import physics as _phys;  _phys.PENALTY_KS = 8000
PENALTY_KS: float = 5000.0          # contact spring stiffness
PENALTY_KD: float = 10.0            # contact damper
MU_KINETIC: float = 0.1             # ground kinetic friction coefficient
FRICTION_BAND: float = 0.1          # friction acts while |y| < FRICTION_BAND
ARC_SAMPLE_INTERVAL: int = 100      # preview waypoint every N sub-steps


def gravity_vector() -> np.ndarray:
    return np.array([0.0, -GRAVITY, 0.0])


def symplectic_euler(position: np.ndarray, velocity: np.ndarray,
                     force: np.ndarray, mass: float, dt: float):
    """
    One semi-implicit Euler sub-step. Velocity is advanced first and the new
    velocity moves the position.

    Returns:
        (acceleration, velocity, position) as new arrays.
    """
    acc = force / mass
    vel = velocity + acc * dt
    pos = position + vel * dt
    return acc, vel, pos


def penalty_force(surface_point, normal, position, velocity) -> np.ndarray:
    """fn = ks·n·((p_s - x)·n) - kd·n·(v·n)"""
    d = np.asarray(surface_point, dtype=float) - position
    spring = normal * float(np.dot(d, normal)) * PENALTY_KS
    damper = normal * float(np.dot(velocity, normal)) * PENALTY_KD
    return spring - damper


@dataclass
class Plane:
    """Infinite plane through `point`; `normal` points into the playable side."""
    name: str
    point: np.ndarray
    normal: np.ndarray

    def __post_init__(self):
        self.point = np.array(self.point, dtype=float)
        self.normal = np.array(self.normal, dtype=float)


def court_planes(half_size: float = None) -> List[Plane]:
    """Ground plus the four walls, in that order."""
    h = COURT_HALF_SIZE if half_size is None else half_size
    return [
        Plane("ground", [0.0, 0.0, 0.0], [0.0, 1.0, 0.0]),
        Plane("front_wall", [0.0, 0.0, -h], [0.0, 0.0, 1.0]),
        Plane("left_wall", [-h, 0.0, 0.0], [1.0, 0.0, 0.0]),
        Plane("right_wall", [h, 0.0, 0.0], [-1.0, 0.0, 0.0]),
        Plane("back_wall", [0.0, 0.0, h], [0.0, 0.0, -1.0]),
    ]


@dataclass
class Ball:
    """Single dynamic sphere driven by accumulated external force."""
    mass: float = BALL_MASS
    radius: float = BALL_RADIUS
    position: np.ndarray = field(default_factory=lambda: np.array(BALL_START, dtype=float))
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    acceleration: np.ndarray = field(default_factory=lambda: np.zeros(3))
    external_force: np.ndarray = field(default_factory=lambda: np.zeros(3))
    arc: Optional[HermiteSpline] = None

    def __post_init__(self):
        if self.mass <= 0:
            raise ValueError(f"Ball mass must be positive, got {self.mass}")
        self.position = np.array(self.position, dtype=float)
        self.velocity = np.array(self.velocity, dtype=float)
        self.acceleration = np.array(self.acceleration, dtype=float)
        self.external_force = np.array(self.external_force, dtype=float)

    @property
    def speed(self) -> float:
        return float(np.linalg.norm(self.velocity))

    def is_near(self, target, tolerance: float) -> bool:
        return float(np.linalg.norm(self.position - np.asarray(target, dtype=float))) <= tolerance

    def reset(self, position=None) -> None:
        self.position = np.array(BALL_START if position is None else position, dtype=float)
        self.velocity = np.zeros(3)
        self.acceleration = np.zeros(3)
        self.external_force = np.zeros(3)
        self.arc = None

    def clear_forces(self) -> None:
        self.external_force = np.zeros(3)

    # ──────────────────────────────────────────
    # Contact response
    # ──────────────────────────────────────────
    def calculate_force(self, surface_point, normal) -> np.ndarray:
        """
        Penalty contact against one plane.

        The force is accumulated only when it pushes along the plane normal
        (ball penetrating, or approaching fast enough that the damper wins).

        Returns:
            The contribution added to external_force (zeros if none).
        """
        normal = np.asarray(normal, dtype=float)
        fn = penalty_force(surface_point, normal, self.position, self.velocity)
        if np.dot(fn, normal) > 0:
            self.external_force = self.external_force + fn
            return fn
        return np.zeros(3)

    def calculate_friction(self, gravity_acc) -> np.ndarray:
        """
        Kinetic friction near the ground: f = -mu_k·|m·g|·v, horizontal only.

        Uses the raw velocity (not its direction), so the drag fades out as
        the ball slows instead of flipping sign around zero speed.
        """
        weight = float(np.linalg.norm(np.asarray(gravity_acc, dtype=float) * self.mass))
        friction = self.velocity * (-MU_KINETIC * weight)
        if -FRICTION_BAND < self.position[1] < FRICTION_BAND:
            friction[1] = 0.0
            self.external_force = self.external_force + friction
            return friction
        return np.zeros(3)

    def update(self, dt: float) -> None:
        """Integrate one sub-step with the force accumulated this tick."""
        self.acceleration, self.velocity, self.position = symplectic_euler(
            self.position, self.velocity, self.external_force, self.mass, dt)

    # ──────────────────────────────────────────
    # Preview (detect only, never accumulates)
    # ──────────────────────────────────────────
    def did_collide(self, surface_point, normal, position) -> bool:
        """Contact sign test at a hypothetical position, using the live velocity."""
        normal = np.asarray(normal, dtype=float)
        fn = penalty_force(surface_point, normal, np.asarray(position, dtype=float),
                           self.velocity)
        return bool(np.dot(fn, normal) > 0)

    def collision(self, position, planes: List[Plane] = None) -> bool:
        planes = court_planes() if planes is None else planes
        return any(self.did_collide(p.point, p.normal, position) for p in planes)

    def update_arc(self, dt: float, constant_force, max_steps: int,
                   planes: List[Plane] = None) -> HermiteSpline:
        """
        Forward-simulate a copy of the ball to build the aiming curve.

        `constant_force` acts on the first sub-step only (a launch impulse);
        gravity acts on every sub-step. A waypoint (position, velocity) is
        recorded every ARC_SAMPLE_INTERVAL steps, and once more on the first
        contact with any plane, which ends the preview. The live ball state
        is left untouched.
        """
        planes = court_planes() if planes is None else planes
        pos = self.position.copy()
        vel = self.velocity.copy()
        force = gravity_vector() * self.mass + np.asarray(constant_force, dtype=float)
        curve = HermiteSpline()

        k = 0
        while k < max_steps:
            if k % ARC_SAMPLE_INTERVAL == 0:
                curve.add_point(pos, vel)
            if self.collision(pos, planes):
                curve.add_point(pos, vel)
                break
            _, vel, pos = symplectic_euler(pos, vel, force, self.mass, dt)
            force = gravity_vector() * self.mass
            k += 1

        logger.debug("arc preview: %d waypoints after %d steps", curve.size, k)
        self.arc = curve
        return curve


class PhysicsEngine:
    """Steps the ball against the court planes."""

    def __init__(self, half_size: float = None):
        self.planes: List[Plane] = court_planes(half_size)
        self.events: list = []

    def update(self, ball: Ball, dt: float, external_force=None) -> None:
        """
        One physics tick: gravity (+ optional external force), penalty force
        from every plane, ground friction, then one symplectic sub-step.

        Planes are evaluated independently, so at edges and corners several
        penalty forces add up.
        """
        self.events.clear()
        ball.external_force = gravity_vector() * ball.mass
        if external_force is not None:
            ball.external_force = ball.external_force + np.asarray(external_force, dtype=float)

        for plane in self.planes:
            fn = ball.calculate_force(plane.point, plane.normal)
            if np.any(fn):
                self.events.append({
                    "type": "contact", "plane": plane.name,
                    "force": float(np.linalg.norm(fn)),
                })
        ball.calculate_friction(gravity_vector())
        ball.update(dt)

    def simulate(self, ball: Ball, dt: float = 0.001, max_time: float = 4.0,
                 external_force=None) -> float:
        """
        Run ticks for max_time seconds; external_force acts on the first tick only.

        Returns:
            Elapsed time in seconds.
        """
        t = 0.0
        force = external_force
        while t < max_time:
            self.update(ball, dt, force)
            force = None
            t += dt
        return t
