"""
HoopSim Web Server — Layer 3 (FastAPI + WebSocket)

Runs the frame loop and streams draw state (ball transform, preview arc,
net segments, skeleton transforms) to browser clients over WebSocket.
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

import numpy as np
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.staticfiles import StaticFiles

from controller import HoopController
from physics import BALL_RADIUS, COURT_HALF_SIZE
import physics as _phys
from shot_presets import FORCES, PRESETS

logger = logging.getLogger("hoopsim.server")

# ── Controller ──────────────────────────────────────────────────────────────

ctrl = HoopController()


# ── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(game_loop())
    yield
    task.cancel()


app = FastAPI(lifespan=lifespan)

# ── Client / input state ────────────────────────────────────────────────────

clients: list[WebSocket] = []

KEY_ACTIONS = {
    "i": "angle_up",
    "k": "angle_down",
    "l": "angle_right",
    "j": "angle_left",
    "p": "power_up",
    "u": "power_down",
    "o": "toggle_shoot",
    "[": "reset",
}

# ── Physics params (live-tunable module constants) ──────────────────────────

PHYSICS_PARAMS = [
    ("GRAVITY",        "Gravity",        1.0,    20.0,   0.2),
    ("PENALTY_KS",     "Contact Ks",     500.0,  20000., 250.0),
    ("PENALTY_KD",     "Contact Kd",     0.0,    100.0,  1.0),
    ("MU_KINETIC",     "Ground Frict.",  0.0,    1.0,    0.01),
    ("FRICTION_BAND",  "Friction Band",  0.01,   0.5,    0.01),
]

PARAM_DEFAULTS = {attr: getattr(_phys, attr) for attr, *_ in PHYSICS_PARAMS}

# ── Async game loop ─────────────────────────────────────────────────────────

TARGET_FPS = 60
FRAME_DT = 1.0 / TARGET_FPS


async def game_loop():
    """Main game loop running at ~60 fps."""
    last_time = time.perf_counter()

    while True:
        now = time.perf_counter()
        dt = now - last_time
        last_time = now

        # step() clamps dt itself (MAX_FRAME_DT)
        ctrl.step(dt)

        if clients:
            frame_msg = _build_frame_message()
            dead: list[WebSocket] = []
            for ws in clients:
                try:
                    await ws.send_text(frame_msg)
                except Exception as exc:
                    logger.info("dropping client: %s", exc)
                    dead.append(ws)
            for ws in dead:
                if ws in clients:
                    clients.remove(ws)

        elapsed = time.perf_counter() - now
        sleep_time = FRAME_DT - elapsed
        if sleep_time > 0:
            await asyncio.sleep(sleep_time)
        else:
            await asyncio.sleep(0)


def _build_frame_message() -> str:
    """Serialize current state into a JSON frame message."""
    frame = ctrl.get_state()
    frame["type"] = "frame"
    frame["events"] = list(ctrl.pending_events)
    ctrl.pending_events.clear()
    frame["sounds"] = [
        {"type": ev.get("type", ""), "plane": ev.get("plane", ""),
         "force": round(float(ev.get("force", 0.0)), 3)}
        for ev in ctrl.physics_events
    ]
    return json.dumps(frame, separators=(",", ":"))


# ── Key press handlers ──────────────────────────────────────────────────────

def _handle_key_down(key: str) -> bool:
    """Dispatch a key press. Returns False for unbound keys."""
    action = KEY_ACTIONS.get(key)
    if action is not None:
        getattr(ctrl, action)()
        return True
    if key in PRESETS:
        name, label = PRESETS[key]
        ctrl.reset()
        ctrl.aim_force = np.array(FORCES[name], dtype=float)
        ctrl.update_arc()
        ctrl.status_msg = f"Preset {label}"
        return True
    return False


# ── Physics params helpers ──────────────────────────────────────────────────

def _get_params_data() -> list:
    """Return all physics params with current values."""
    result = []
    for attr, label, mn, mx, step in PHYSICS_PARAMS:
        result.append({
            "attr": attr, "label": label,
            "value": round(getattr(_phys, attr), 6),
            "min": mn, "max": mx, "step": step,
        })
    return result


def _adjust_param(idx: int, direction: int, fine: bool = False):
    """Nudge one param by +/- step (step/10 when fine), clamped to its range."""
    if not 0 <= idx < len(PHYSICS_PARAMS):
        return None
    attr, label, mn, mx, step = PHYSICS_PARAMS[idx]
    s = step / 10.0 if fine else step
    cur = getattr(_phys, attr)
    new_val = max(mn, min(mx, cur + direction * s))
    setattr(_phys, attr, new_val)
    ctrl.update_arc()
    return new_val


def _reset_params() -> None:
    for attr, dflt in PARAM_DEFAULTS.items():
        setattr(_phys, attr, dflt)
    ctrl.update_arc()


# ── WebSocket endpoint ──────────────────────────────────────────────────────

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    clients.append(ws)

    await ws.send_text(json.dumps({
        "type": "init",
        "court_half_size": COURT_HALF_SIZE,
        "ball_radius": BALL_RADIUS,
        "hoop_center": ctrl.HOOP_CENTER.tolist(),
        "hoop_radius": ctrl.HOOP_RADIUS,
        "sim_dt": ctrl.SIM_DT,
        "keys": KEY_ACTIONS,
    }))
    await ws.send_text(_build_frame_message())

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                logger.warning("ignoring non-JSON message: %.80s", data)
                continue

            cmd = msg.get("cmd", "")
            if cmd == "key_down":
                _handle_key_down(msg.get("key", ""))
            elif cmd == "execute":
                ctrl.execute_command(msg.get("text", ""))
            elif cmd == "get_state":
                await ws.send_text(json.dumps({
                    "type": "state_json",
                    "data": ctrl.get_state_json(),
                }))
            elif cmd == "get_params":
                await ws.send_text(json.dumps({
                    "type": "params",
                    "data": _get_params_data(),
                }))
            elif cmd == "adjust_param":
                idx = int(msg.get("index", 0))
                new_val = _adjust_param(idx, int(msg.get("direction", 0)),
                                        bool(msg.get("fine", False)))
                if new_val is not None:
                    await ws.send_text(json.dumps({
                        "type": "param_update",
                        "index": idx,
                        "value": round(new_val, 6),
                    }))
            elif cmd == "reset_params":
                _reset_params()
                await ws.send_text(json.dumps({
                    "type": "params",
                    "data": _get_params_data(),
                }))
    except WebSocketDisconnect:
        logger.info("client disconnected")
    finally:
        if ws in clients:
            clients.remove(ws)


# ── Plain HTTP ──────────────────────────────────────────────────────────────

@app.get("/state")
async def state():
    return ctrl.get_state()


STATIC_DIR = Path(__file__).parent / "static"
if STATIC_DIR.is_dir():
    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


# ── Run with uvicorn ────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=False)
