"""
HoopController — Layer 2 (Game Logic)

Owns the ball, court engine, hoop net and shooter, and drives them from the
frame loop. Communicates with Layer 3 (server.py) via two queues:
  - pending_events  : rendering commands (reset, shot_started, score, …)
  - physics_events  : ball contact events for sound playback

Layer 3 calls:
  ctrl.step(dt)               — advance physics + state machine each frame
  ctrl.angle_up() …           — aim input (force impulses)
  ctrl.toggle_shoot()         — start / pause the shot
  ctrl.get_state()            — everything needed to draw one frame
"""

import csv
import json
import logging
from pathlib import Path
import numpy as np

from physics import Ball, PhysicsEngine, BALL_START, court_planes
import physics as _phys
from net import HoopNet, NET_SETTLE_STEPS, NET_DT
from skeleton import ArticulatedHuman
from vecmath import translation, scale

logger = logging.getLogger("hoopsim.controller")


def _copy_ball(b: Ball) -> Ball:
    return Ball(mass=b.mass, radius=b.radius, position=b.position.copy(),
                velocity=b.velocity.copy())


def _vec(v) -> list:
    return [round(float(x), 5) for x in v]


class HoopController:
    """Layer 2: shot state machine + physics orchestration."""

    # ── Class-level constants ─────────────────────────────────────────────────
    SIM_DT          = 0.001
    MAX_FRAME_DT    = 1.0 / 30.0
    ARC_DT          = 0.001
    ARC_MAX_STEPS   = 5000
    ARC_SAMPLES     = 100
    HOOP_CENTER     = np.array([0.0, 6.5, -8.8])
    HOOP_RADIUS     = 0.75
    SCORE_TOLERANCE = 0.3
    SHOT_MAX_TIME   = 8.0
    REST_SPEED      = 0.05
    BALL_DRAW_SCALE = 0.5

    ANGLE_UP    = np.array([0.0, 5000.0, 0.0])
    ANGLE_DOWN  = np.array([0.0, -5000.0, 0.0])
    ANGLE_RIGHT = np.array([1000.0, 0.0, 0.0])
    ANGLE_LEFT  = np.array([-1000.0, 0.0, 0.0])
    POWER_STEP  = 1000.0

    # physics constants the "params" command may set: name -> (min, max, type)
    TUNABLE_PARAMS = {
        "GRAVITY":             (1.0,   20.0,    float),
        "PENALTY_KS":          (500.0, 20000.0, float),
        "PENALTY_KD":          (0.0,   100.0,   float),
        "MU_KINETIC":          (0.0,   1.0,     float),
        "FRICTION_BAND":       (0.01,  0.5,     float),
        "COURT_HALF_SIZE":     (2.0,   50.0,    float),
        "ARC_SAMPLE_INTERVAL": (1,     1000,    int),
    }

    # ── Constructor ───────────────────────────────────────────────────────────

    def __init__(self, net_settle_steps: int = NET_SETTLE_STEPS):
        # Physics
        self.ball = Ball()
        self.engine = PhysicsEngine()
        self._sim_engine = PhysicsEngine()   # reused for headless simulate_shot()
        self.net = HoopNet(center=self.HOOP_CENTER, rim_radius=self.HOOP_RADIUS)
        self.net.settle(net_settle_steps, NET_DT)
        self.human = ArticulatedHuman()

        # Shot state
        self.running = False
        self.sim_speed = 1.0
        self.t_sim = 0.0
        self.t_net = 0.0
        self.shot_time = 0.0
        self.aim_force = np.zeros(3)
        self._launch_force = np.zeros(3)
        self.score = 0
        self.shots = 0
        self.scored_this_shot = False

        # Trajectory recording
        self._recording_path = ""
        self._recording_rows: list = []

        self.status_msg = "Aim with I/J/K/L, power with P/U, O to shoot."

        # Event queues
        self.pending_events: list[dict] = []
        self.physics_events: list[dict] = []

        self.update_arc()

    # ──────────────────────────────────────────────────────────────────────────
    # Main loop
    # ──────────────────────────────────────────────────────────────────────────

    def step(self, dt_frame: float) -> None:
        """Advance one rendered frame. Called every frame by L3."""
        dt = min(self.MAX_FRAME_DT, max(0.0, dt_frame)) * self.sim_speed
        self.physics_events.clear()

        if self.running:
            t_next = self.t_sim + dt
            while self.t_sim < t_next and self.running:
                self.physics_tick(self.SIM_DT)
                self.t_sim += self.SIM_DT

        n_next = self.t_net + dt
        while self.t_net < n_next:
            self.net.step(NET_DT)
            self.t_net += NET_DT

        self.human.update(self.ball.position, self.running)

    def physics_tick(self, dt: float) -> None:
        """One fixed ball sub-step. The launch force is spent on the first tick."""
        self.engine.update(self.ball, dt, self._launch_force)
        self._launch_force = np.zeros(3)
        self.physics_events.extend(self.engine.events)
        self.shot_time += dt

        if self._recording_path:
            b = self.ball
            self._recording_rows.append([round(self.shot_time, 6), *b.position, *b.velocity])

        if self.check_score():
            self.score += 1
            self.scored_this_shot = True
            self.status_msg = f"Score! ({self.score}/{self.shots})"
            self.pending_events.append({"type": "score", "score": self.score})
            logger.info("score after %.3fs of flight", self.shot_time)

        at_rest = (self.ball.speed < self.REST_SPEED
                   and abs(self.ball.position[1]) < _phys.FRICTION_BAND
                   and self.shot_time > 0.5)
        if self.shot_time >= self.SHOT_MAX_TIME or at_rest:
            self._on_shot_finished()

    def _on_shot_finished(self) -> None:
        self.running = False
        self.pending_events.append({"type": "shot_finished",
                                    "scored": self.scored_this_shot})
        if self._recording_path:
            self._write_recording()
        if not self.scored_this_shot:
            self.status_msg = "Missed. Press [ to reset."
        logger.info("shot finished: scored=%s t=%.3f", self.scored_this_shot, self.shot_time)

    def check_score(self) -> bool:
        """True the first time the ball passes within SCORE_TOLERANCE of the hoop this shot."""
        if self.scored_this_shot:
            return False
        return self.ball.is_near(self.HOOP_CENTER, self.SCORE_TOLERANCE)

    # ──────────────────────────────────────────────────────────────────────────
    # Input
    # ──────────────────────────────────────────────────────────────────────────

    def add_force(self, impulse) -> None:
        self.aim_force = self.aim_force + np.asarray(impulse, dtype=float)
        self.update_arc()

    def angle_up(self) -> None:
        self.add_force(self.ANGLE_UP)

    def angle_down(self) -> None:
        self.add_force(self.ANGLE_DOWN)

    def angle_right(self) -> None:
        self.add_force(self.ANGLE_RIGHT)

    def angle_left(self) -> None:
        self.add_force(self.ANGLE_LEFT)

    def power_up(self) -> None:
        self.add_force([0.0, 0.0, -self.POWER_STEP])

    def power_down(self) -> None:
        """Back the forward (-z) power off, never past zero."""
        if self.aim_force[2] + self.POWER_STEP > 0:
            return
        self.add_force([0.0, 0.0, self.POWER_STEP])

    def toggle_shoot(self) -> None:
        self.running = not self.running
        if self.running and self.shot_time == 0.0:
            self._launch_force = self.aim_force.copy()
            self.shots += 1
            self.scored_this_shot = False
            self.status_msg = "Shooting..."
            self.pending_events.append({"type": "shot_started", "force": _vec(self.aim_force)})
            logger.info("shot %d fired with force %s", self.shots, _vec(self.aim_force))
        self.update_arc()

    def reset(self) -> None:
        """Put the ball back in the shooter's hands and clear the aim."""
        self.ball.reset(BALL_START)
        self.running = False
        self.shot_time = 0.0
        self.aim_force = np.zeros(3)
        self._launch_force = np.zeros(3)
        self.scored_this_shot = False
        self.status_msg = "Aim with I/J/K/L, power with P/U, O to shoot."
        self.pending_events.append({"type": "reset"})
        self.update_arc()

    def update_arc(self):
        return self.ball.update_arc(self.ARC_DT, self.aim_force, self.ARC_MAX_STEPS,
                                    self.engine.planes)

    # ──────────────────────────────────────────────────────────────────────────
    # Headless shot
    # ──────────────────────────────────────────────────────────────────────────

    def simulate_shot(self, force, max_t: float = 4.0, dt: float = None) -> dict:
        """
        Fire `force` from the current ball state without touching live state.

        Returns:
            dict with scored, min_distance (to the hoop centre), sim_time,
            final_position and contacts (ticks with any plane contact).
        """
        dt = self.SIM_DT if dt is None else dt
        ball = _copy_ball(self.ball)
        engine = self._sim_engine
        launch = np.asarray(force, dtype=float)
        min_dist = float(np.linalg.norm(ball.position - self.HOOP_CENTER))
        contacts = 0
        t = 0.0
        while t < max_t:
            engine.update(ball, dt, launch)
            launch = None
            t += dt
            if engine.events:
                contacts += 1
            min_dist = min(min_dist, float(np.linalg.norm(ball.position - self.HOOP_CENTER)))
        return {
            "scored": min_dist <= self.SCORE_TOLERANCE,
            "min_distance": round(min_dist, 6),
            "sim_time": round(t, 6),
            "final_position": _vec(ball.position),
            "contacts": contacts,
        }

    # ──────────────────────────────────────────────────────────────────────────
    # Drawing / state export
    # ──────────────────────────────────────────────────────────────────────────

    def ball_transform(self) -> np.ndarray:
        p = self.ball.position
        s = self.BALL_DRAW_SCALE
        return translation(p[0], p[1], p[2]) @ scale(s, s, s)

    def get_state(self) -> dict:
        arc = self.ball.arc
        return {
            "ball": {
                "pos": _vec(self.ball.position),
                "vel": _vec(self.ball.velocity),
                "transform": np.round(self.ball_transform(), 5).tolist(),
            },
            "arc": [] if (self.running or arc is None)
                   else np.round(arc.sample(self.ARC_SAMPLES), 4).tolist(),
            "net": np.round(self.net.sim.segments(), 4).tolist(),
            "human": [{"name": name, "shape": shape,
                       "transform": np.round(m, 4).tolist()}
                      for name, shape, m in self.human.world_transforms()],
            "aim_force": _vec(self.aim_force),
            "running": self.running,
            "score": self.score,
            "shots": self.shots,
            "status": self.status_msg,
        }

    def get_state_json(self) -> str:
        return json.dumps(self.get_state(), separators=(",", ":"))

    # ──────────────────────────────────────────────────────────────────────────
    # Trajectory recording
    # ──────────────────────────────────────────────────────────────────────────

    def start_recording(self, path: str) -> None:
        self._recording_path = str(path)
        self._recording_rows = []
        logger.info("recording next shot to %s", path)

    def _write_recording(self) -> None:
        path = Path(self._recording_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(["t", "x", "y", "z", "vx", "vy", "vz"])
            writer.writerows(self._recording_rows)
        logger.info("saved %d rows to %s", len(self._recording_rows), path)
        self.pending_events.append({"type": "recording_saved", "file": str(path)})
        self._recording_path = ""
        self._recording_rows = []

    # ──────────────────────────────────────────────────────────────────────────
    # JSON command channel
    # ──────────────────────────────────────────────────────────────────────────

    def execute_command(self, text: str) -> None:
        """
        Run one JSON command, e.g.::

            {"cmd": "set_force", "force": [0, 8400, -7300]}
            {"cmd": "set_ball", "pos": [0, 3.5, 0], "vel": [0, 0, 0]}
            {"cmd": "params", "params": {"PENALTY_KS": 8000}}
            {"cmd": "shoot"} / {"cmd": "reset"} / {"cmd": "record", "file": "shot.csv"}

        Malformed or unknown commands are logged and ignored.
        """
        if not text or not text.strip():
            logger.warning("execute_command: empty text")
            return
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("execute_command: JSON parse error: %s", exc)
            return
        if not isinstance(data, dict):
            logger.warning("execute_command: expected an object, got %s", type(data).__name__)
            return

        cmd = data.get("cmd", "")
        try:
            if cmd == "set_force":
                self.aim_force = np.array(data["force"], dtype=float).reshape(3)
                self.update_arc()
            elif cmd == "set_ball":
                self.ball.reset(data["pos"])
                self.ball.velocity = np.array(data.get("vel", [0.0, 0.0, 0.0]), dtype=float)
                self.update_arc()
            elif cmd == "params":
                self._cmd_params(data.get("params", {}))
            elif cmd == "shoot":
                self.toggle_shoot()
            elif cmd == "reset":
                self.reset()
            elif cmd == "record":
                self.start_recording(data.get("file", "shot.csv"))
            else:
                logger.warning("execute_command: unknown cmd %r", cmd)
        except (KeyError, ValueError, TypeError) as exc:
            logger.warning("execute_command: bad %r payload: %s", cmd, exc)

    def _cmd_params(self, params: dict) -> None:
        if not isinstance(params, dict):
            logger.warning("params: expected an object, got %s", type(params).__name__)
            return
        resize = False
        for name, value in params.items():
            if name not in self.TUNABLE_PARAMS:
                logger.warning("params: unknown physics constant %s", name)
                continue
            mn, mx, kind = self.TUNABLE_PARAMS[name]
            value = float(value)
            if not mn <= value <= mx:
                logger.warning("params: %s=%s outside [%s, %s]", name, value, mn, mx)
                continue
            setattr(_phys, name, kind(value))
            resize = resize or name == "COURT_HALF_SIZE"
        if resize:
            # planes are built once per engine
            self.engine.planes = court_planes()
            self._sim_engine.planes = court_planes()
        self.update_arc()
