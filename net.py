"""
Mass-Spring-Damper Engine
Particles joined by viscoelastic springs, with gravity, a one-sided ground
penalty and optional pinned (static) particles. Used for the hoop net.
"""

import logging
import math
import numpy as np
from dataclasses import dataclass, field
from typing import List

from physics import symplectic_euler
from vecmath import normalized

logger = logging.getLogger("hoopsim.net")

# ── Net defaults ──────────────────────────────────────────────────────────────
NET_DT: float = 0.001
NET_SETTLE_STEPS: int = 10_000
NET_PARTICLE_MASS: float = 0.02
NET_KS: float = 40.0
NET_KD: float = 0.1
NET_GROUND_KS: float = 5000.0
NET_GROUND_KD: float = 10.0
NET_GROUND_MU: float = 3.75


class UninitializedEntityError(RuntimeError):
    """A particle or spring was stepped before its parameters were set."""


@dataclass
class Particle:
    mass: float = 0.0
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    acceleration: np.ndarray = field(default_factory=lambda: np.zeros(3))
    external_force: np.ndarray = field(default_factory=lambda: np.zeros(3))
    valid: bool = False
    index: int = 0

    def update(self, dt: float) -> None:
        if not self.valid:
            raise UninitializedEntityError(f"particle {self.index} was never set")
        self.acceleration, self.velocity, self.position = symplectic_euler(
            self.position, self.velocity, self.external_force, self.mass, dt)


@dataclass
class Spring:
    """Viscoelastic link between two particles, addressed by index."""
    index_1: int = -1
    index_2: int = -1
    ks: float = 0.0
    kd: float = 0.0
    rest_length: float = 0.0
    valid: bool = False

    def compute_force(self, particles: List[Particle]) -> np.ndarray:
        """Force on particle 1 (particle 2 receives the negation)."""
        if not self.valid:
            raise UninitializedEntityError(
                f"spring {self.index_1}-{self.index_2} was never set")
        p1, p2 = particles[self.index_1], particles[self.index_2]
        d = p2.position - p1.position
        direction = normalized(d)
        stretch = float(np.linalg.norm(d)) - self.rest_length
        rel_vel = p2.velocity - p1.velocity
        return direction * (self.ks * stretch) + direction * (self.kd * float(np.dot(rel_vel, direction)))

    def update(self, particles: List[Particle]) -> None:
        f = self.compute_force(particles)
        p1, p2 = particles[self.index_1], particles[self.index_2]
        p1.external_force = p1.external_force + f
        p2.external_force = p2.external_force - f


class Simulation:
    """Fixed-size arenas of particles and springs stepped together."""

    def __init__(self, gravity=(0.0, 0.0, 0.0), ground_ks: float = 0.0,
                 ground_kd: float = 0.0, ground_mu: float = 0.0):
        self.particles: List[Particle] = []
        self.springs: List[Spring] = []
        self.gravity = np.array(gravity, dtype=float)
        self.ground_ks = ground_ks
        self.ground_kd = ground_kd
        self.ground_mu = ground_mu

    # ──────────────────────────────────────────
    # Setup
    # ──────────────────────────────────────────
    def create_particles(self, num: int) -> None:
        self.particles = [Particle(index=i) for i in range(num)]

    def create_springs(self, num: int) -> None:
        self.springs = [Spring() for _ in range(num)]

    create_spring = create_springs

    def set_particle(self, index: int, mass: float, position,
                     velocity=(0.0, 0.0, 0.0)) -> None:
        if mass <= 0:
            raise ValueError(f"particle {index}: mass must be positive, got {mass}")
        p = self.particles[index]
        p.mass = float(mass)
        p.position = np.array(position, dtype=float)
        p.velocity = np.array(velocity, dtype=float)
        p.index = index
        p.valid = True

    def set_all_velocities(self, velocity) -> None:
        for p in self.particles:
            p.velocity = np.array(velocity, dtype=float)

    def set_spring(self, index: int, pindex1: int, pindex2: int,
                   ks: float, kd: float, rest_length: float) -> None:
        if ks < 0 or kd < 0 or rest_length < 0:
            raise ValueError(
                f"spring {index}: ks, kd and rest_length must be >= 0 "
                f"(got ks={ks}, kd={kd}, rest_length={rest_length})")
        n = len(self.particles)
        for pi in (pindex1, pindex2):
            if not 0 <= pi < n:
                raise IndexError(f"spring {index}: particle index {pi} out of range [0, {n})")
        s = self.springs[index]
        s.index_1, s.index_2 = pindex1, pindex2
        s.ks, s.kd, s.rest_length = float(ks), float(kd), float(rest_length)
        s.valid = True

    # ──────────────────────────────────────────
    # Forces + stepping
    # ──────────────────────────────────────────
    def calculate_ground_force(self, particle: Particle) -> None:
        """One-sided penalty: only particles below y = 0 are pushed back up."""
        x = particle.position
        if x[1] >= 0:
            return
        d = x - np.array([x[0], 0.0, x[2]])
        direction = normalized(d)
        dist = float(np.linalg.norm(d))
        f_s = direction * (self.ground_ks * dist)
        f_d = direction * (self.ground_kd * float(np.dot(particle.velocity, direction)))
        friction = particle.velocity * self.ground_mu
        particle.external_force = particle.external_force - (f_s + f_d + friction)

    def step(self, dt: float, pinned=()) -> None:
        """
        Advance one sub-step. Forces are rebuilt from scratch (gravity, ground,
        springs) before any particle moves; particles whose index is in
        `pinned` keep their position and velocity.
        """
        for p in self.particles:
            p.external_force = self.gravity * p.mass
            self.calculate_ground_force(p)
        for s in self.springs:
            s.update(self.particles)
        pinned = set(pinned)
        for p in self.particles:
            if p.index not in pinned:
                p.update(dt)

    def update(self, dt: float) -> None:
        self.step(dt)

    def settle(self, steps: int, dt: float, pinned=()) -> None:
        for _ in range(steps):
            self.step(dt, pinned)

    def positions(self) -> np.ndarray:
        return np.array([p.position for p in self.particles], dtype=float).reshape(-1, 3)

    def segments(self) -> np.ndarray:
        """Spring endpoints, shape (num_springs, 2, 3)."""
        return np.array([[self.particles[s.index_1].position,
                          self.particles[s.index_2].position]
                         for s in self.springs], dtype=float).reshape(-1, 2, 3)


class HoopNet:
    """
    Tapered cylindrical net hanging from a horizontal rim.

    Particle (row r, segment j) has index r * segments + j; row 0 is the rim
    and is pinned. Springs: ring links, vertical links and both shear
    diagonals, each at its built length.
    """

    def __init__(self, center=(0.0, 6.5, -8.8), rim_radius: float = 0.75,
                 rows: int = 4, segments: int = 8, row_spacing: float = 0.3,
                 taper: float = 0.4, mass: float = NET_PARTICLE_MASS,
                 ks: float = NET_KS, kd: float = NET_KD):
        if rows < 2 or segments < 3:
            raise ValueError(f"net needs rows >= 2 and segments >= 3, got {rows}x{segments}")
        self.center = np.array(center, dtype=float)
        self.rows = rows
        self.segments = segments
        self.sim = Simulation(gravity=(0.0, -9.8, 0.0), ground_ks=NET_GROUND_KS,
                              ground_kd=NET_GROUND_KD, ground_mu=NET_GROUND_MU)

        self.sim.create_particles(rows * segments)
        for r in range(rows):
            radius = rim_radius * (1.0 - taper * r / (rows - 1))
            y = self.center[1] - r * row_spacing
            for j in range(segments):
                a = 2 * math.pi * j / segments
                pos = (self.center[0] + radius * math.cos(a), y,
                       self.center[2] + radius * math.sin(a))
                self.sim.set_particle(self._idx(r, j), mass, pos)

        links = []
        for r in range(rows):
            for j in range(segments):
                links.append((self._idx(r, j), self._idx(r, j + 1)))
                if r + 1 < rows:
                    links.append((self._idx(r, j), self._idx(r + 1, j)))
                    links.append((self._idx(r, j), self._idx(r + 1, j + 1)))
                    links.append((self._idx(r, j + 1), self._idx(r + 1, j)))

        self.sim.create_springs(len(links))
        for k, (i1, i2) in enumerate(links):
            rest = float(np.linalg.norm(self.sim.particles[i2].position
                                        - self.sim.particles[i1].position))
            self.sim.set_spring(k, i1, i2, ks, kd, rest)

        self.pinned = tuple(self._idx(0, j) for j in range(segments))

    def _idx(self, row: int, seg: int) -> int:
        return row * self.segments + seg % self.segments

    def step(self, dt: float = NET_DT) -> None:
        self.sim.step(dt, self.pinned)

    def settle(self, steps: int = NET_SETTLE_STEPS, dt: float = NET_DT) -> None:
        """Relax the net under gravity before interaction starts."""
        self.sim.settle(steps, dt, self.pinned)
        logger.info("net settled: %d steps, %d particles, %d springs",
                    steps, len(self.sim.particles), len(self.sim.springs))
