"""
Shot Preset System
Named aim forces (swish, short, lob) that set up a controller, draw the
preview arc and optionally run the shot headless.
"""

import numpy as np
from controller import HoopController

# Short net relaxation: presets only care about the ball
_SETTLE_STEPS = 200

FORCES = {
    "swish": (0.0, 8400.0, -7300.0),
    "short": (0.0, 6000.0, -4000.0),
    "lob":   (0.0, 11000.0, -4000.0),
}


def _setup(force, run: bool, max_t: float = 4.0) -> dict:
    ctrl = HoopController(net_settle_steps=_SETTLE_STEPS)
    ctrl.aim_force = np.array(force, dtype=float)
    arc = ctrl.update_arc()
    result = ctrl.simulate_shot(ctrl.aim_force, max_t=max_t) if run else None
    return {"ctrl": ctrl, "force": ctrl.aim_force.copy(), "arc": arc, "result": result}


class ShotPreset:
    """Each preset: aim → preview arc → (optional) headless shot → result dict."""

    @staticmethod
    def swish(run=True) -> dict:
        """Launch ≈ (0, 8.4, -7.3) m/s: descends through the rim about 1.2 s later."""
        return _setup(FORCES["swish"], run)

    @staticmethod
    def short(run=True) -> dict:
        """Too flat and too soft: lands well in front of the hoop and bounces out."""
        return _setup(FORCES["short"], run)

    @staticmethod
    def lob(run=True) -> dict:
        """High, slow arc that comes down short of the rim."""
        return _setup(FORCES["lob"], run)


PRESETS = {
    "1": ("swish", "1: Swish"),
    "2": ("short", "2: Short"),
    "3": ("lob",   "3: Lob"),
}
