"""
Articulated human with a Jacobian pseudo-inverse IK solver for both arms.

The skeleton is an arena: nodes and arcs live in lists and refer to each
other by integer id. Articulation matrices are always rebuilt from the DOF
arrays, so a pose is fully described by (right dofs, left dofs).

DOF layout per arm (10 scalars):
    0-2  root translation x, y, z
    3-5  shoulder rotation x, y, z
    6-7  elbow rotation x, y
    8-9  wrist rotation y, z
"""

import logging
import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional

from vecmath import (identity, translation, scale, rotation, translation_of,
                     pseudo_inverse)

logger = logging.getLogger("hoopsim.skeleton")

NUM_DOFS: int = 10
EPSILON: float = 0.001          # goal reached below this error
MAX_ITERATIONS: int = 10        # IK iterations per call
IK_STEP: float = 0.001          # fraction of the error handed to each update
JACOBIAN_DELTA: float = 0.001   # finite-difference perturbation
IK_DAMPING: float = 0.0         # damped-least-squares factor; 0 is the plain pseudo-inverse
LARGE_MOTION_ERROR: float = 2.0

# root translation and elbow twist are not driven by the solver
DEFAULT_DOF_MASK: tuple = (0, 0, 0, 1, 1, 1, 0, 1, 1, 1)


# ──────────────────────────────────────────────
# Arena
# ──────────────────────────────────────────────
@dataclass
class Node:
    name: str
    transform: np.ndarray
    shape: str = "sphere"
    children: List[int] = field(default_factory=list)


@dataclass
class Arc:
    name: str
    parent: Optional[int]
    child: int
    location: np.ndarray
    articulation: np.ndarray = field(default_factory=identity)


class Skeleton:
    def __init__(self):
        self.nodes: List[Node] = []
        self.arcs: List[Arc] = []
        self._node_ids: dict = {}
        self._arc_ids: dict = {}

    def add_node(self, name: str, transform: np.ndarray, shape: str = "sphere") -> int:
        if name in self._node_ids:
            raise ValueError(f"duplicate node name: {name}")
        self.nodes.append(Node(name, np.array(transform, dtype=float), shape))
        self._node_ids[name] = len(self.nodes) - 1
        return self._node_ids[name]

    def add_arc(self, name: str, parent: Optional[str], child: str,
                location: np.ndarray) -> int:
        if name in self._arc_ids:
            raise ValueError(f"duplicate arc name: {name}")
        parent_id = None if parent is None else self._node_ids[parent]
        arc = Arc(name, parent_id, self._node_ids[child], np.array(location, dtype=float))
        self.arcs.append(arc)
        arc_id = len(self.arcs) - 1
        self._arc_ids[name] = arc_id
        if parent_id is not None:
            self.nodes[parent_id].children.append(arc_id)
        return arc_id

    def node(self, name: str) -> Node:
        return self.nodes[self._node_ids[name]]

    def arc(self, name: str) -> Arc:
        return self.arcs[self._arc_ids[name]]

    def roots(self) -> List[int]:
        return [i for i, a in enumerate(self.arcs) if a.parent is None]

    def world_transforms(self) -> list:
        """
        Depth-first walk from every root arc.

        Returns:
            List of (node name, shape, 4x4 world matrix) in draw order. The
            node's own transform is applied to its shape only, not passed on
            to its children.
        """
        out = []
        stack = [(arc_id, identity()) for arc_id in reversed(self.roots())]
        while stack:
            arc_id, parent_m = stack.pop()
            arc = self.arcs[arc_id]
            m = parent_m @ arc.location @ arc.articulation
            node = self.nodes[arc.child]
            out.append((node.name, node.shape, m @ node.transform))
            for child_arc in reversed(node.children):
                stack.append((child_arc, m))
        return out


# ──────────────────────────────────────────────
# Articulation builders
# ──────────────────────────────────────────────
def root_articulation(x: float, y: float, z: float) -> np.ndarray:
    return translation(x, y, z)


def shoulder_articulation(rx: float, ry: float, rz: float) -> np.ndarray:
    return rotation(rz, 0, 0, 1) @ rotation(ry, 0, 1, 0) @ rotation(rx, 1, 0, 0)


def elbow_articulation(rx: float, ry: float) -> np.ndarray:
    return rotation(ry, 0, 1, 0) @ rotation(rx, 1, 0, 0)


def wrist_articulation(ry: float, rz: float) -> np.ndarray:
    return rotation(rz, 0, 0, 1) @ rotation(ry, 0, 1, 0)


def chain_articulations(dofs) -> tuple:
    d = dofs
    return (root_articulation(d[0], d[1], d[2]),
            shoulder_articulation(d[3], d[4], d[5]),
            elbow_articulation(d[6], d[7]),
            wrist_articulation(d[8], d[9]))


@dataclass(frozen=True)
class Chain:
    """One arm: which arcs it drives and how the solver treats it."""
    name: str
    shoulder: str
    elbow: str
    wrist: str
    hand: str
    mask: tuple = DEFAULT_DOF_MASK
    recovery_offset: tuple = (0.0, -10.0, 0.0)


@dataclass
class LimbState:
    dofs: np.ndarray
    end_effector: np.ndarray

    def copy(self) -> "LimbState":
        return LimbState(self.dofs.copy(), self.end_effector.copy())


RIGHT_ARM = Chain("right", "r_shoulder", "r_elbow", "r_wrist", "r_hand",
                  recovery_offset=(3.0, -10.0, 0.0))
LEFT_ARM = Chain("left", "l_shoulder", "l_elbow", "l_wrist", "l_hand",
                 recovery_offset=(-3.0, -10.0, 0.0))


def _limb(skel: Skeleton, side: str, sign: float) -> None:
    """Upper arm, lower arm and hand hanging off the torso; sign = +1 right, -1 left."""
    s = side[0]
    skel.add_node(f"{s}u_arm", translation(sign * 1.2, 0, 0) @ scale(1.2, .2, .2))
    skel.add_arc(f"{s}_shoulder", "torso", f"{s}u_arm", translation(sign * 0.6, 1.1, 0))
    skel.add_node(f"{s}l_arm", translation(sign * 1.0, 0, 0) @ scale(1, .2, .2))
    skel.add_arc(f"{s}_elbow", f"{s}u_arm", f"{s}l_arm", translation(sign * 2.4, 0, 0))
    skel.add_node(f"{s}_hand", translation(sign * 0.4, 0, 0) @ scale(.4, .3, .2))
    skel.add_arc(f"{s}_wrist", f"{s}l_arm", f"{s}_hand", translation(sign * 2.0, 0, 0))


def _leg(skel: Skeleton, side: str, sign: float) -> None:
    s = side[0]
    skel.add_node(f"{s}u_leg", translation(0, -.5, 0) @ scale(0.3, 1, 0.3))
    skel.add_arc(f"{s}_hip", "torso", f"{s}u_leg", translation(sign * 0.4, -1.75, 0))
    skel.add_node(f"{s}_foot", translation(0, -.2, 0) @ scale(0.3, 0.2, 0.4))
    skel.add_arc(f"{s}_ankle", f"{s}u_leg", f"{s}_foot", translation(0, -1.4, 0))


class ArticulatedHuman:
    """Humanoid whose two arms are posed by iterative IK toward a goal point."""

    def __init__(self, rest_dofs=None, damping: float = IK_DAMPING,
                 root_location=(0.0, 3.5, 2.0)):
        skel = self.skeleton = Skeleton()
        skel.add_node("torso", scale(.8, 1.5, 0.7))
        skel.add_arc("root", None, "torso", translation(*root_location))
        skel.add_node("head", translation(0, 0.7, 0) @ scale(0.7, 0.7, 0.7))
        skel.add_arc("neck", "torso", "head", translation(0, 1.5, 0))
        _limb(skel, "right", 1.0)
        _limb(skel, "left", -1.0)
        _leg(skel, "right", 1.0)
        _leg(skel, "left", -1.0)

        self.damping = damping
        self.right_chain = RIGHT_ARM
        self.left_chain = LEFT_ARM
        rest = np.zeros(NUM_DOFS) if rest_dofs is None else np.array(rest_dofs, dtype=float)
        if rest.shape != (NUM_DOFS,):
            raise ValueError(f"rest_dofs must have {NUM_DOFS} entries, got {rest.shape}")
        self.right = self._state(self.right_chain, rest.copy())
        self.left = self._state(self.left_chain, rest.copy())
        self.update_articulation()

    def _state(self, chain: Chain, dofs: np.ndarray) -> LimbState:
        return LimbState(dofs, self.end_effector(chain, dofs))

    # ──────────────────────────────────────────
    # Forward kinematics
    # ──────────────────────────────────────────
    def end_effector(self, chain: Chain, dofs) -> np.ndarray:
        """Hand position for the given DOFs: root -> shoulder -> elbow -> wrist -> hand."""
        skel = self.skeleton
        root_a, shoulder_a, elbow_a, wrist_a = chain_articulations(dofs)
        m = (skel.arc("root").location @ root_a
             @ skel.arc(chain.shoulder).location @ shoulder_a
             @ skel.arc(chain.elbow).location @ elbow_a
             @ skel.arc(chain.wrist).location @ wrist_a
             @ skel.node(chain.hand).transform)
        return translation_of(m)

    def update_articulation(self) -> None:
        """Rebuild every articulation matrix from the DOF arrays (root follows the right arm)."""
        skel = self.skeleton
        skel.arc("root").articulation = root_articulation(*self.right.dofs[0:3])
        for chain, state in ((self.right_chain, self.right), (self.left_chain, self.left)):
            _, shoulder_a, elbow_a, wrist_a = chain_articulations(state.dofs)
            skel.arc(chain.shoulder).articulation = shoulder_a
            skel.arc(chain.elbow).articulation = elbow_a
            skel.arc(chain.wrist).articulation = wrist_a

    # ──────────────────────────────────────────
    # Inverse kinematics
    # ──────────────────────────────────────────
    def jacobian(self, chain: Chain, dofs, delta: float = JACOBIAN_DELTA) -> np.ndarray:
        """3x10 forward-difference Jacobian; masked-out DOFs give zero columns."""
        dofs = np.asarray(dofs, dtype=float)
        base = self.end_effector(chain, dofs)
        J = np.zeros((3, NUM_DOFS))
        for i in range(NUM_DOFS):
            if not chain.mask[i]:
                continue
            perturbed = dofs.copy()
            perturbed[i] += delta
            J[:, i] = (self.end_effector(chain, perturbed) - base) / delta
        return J

    def ik_step(self, chain: Chain, state: LimbState, target,
                step: float = IK_STEP) -> LimbState:
        """One pseudo-inverse update moving the hand a `step` fraction toward target."""
        dx = (np.asarray(target, dtype=float) - state.end_effector) * step
        J = self.jacobian(chain, state.dofs)
        J_inv, singular = pseudo_inverse(J, self.damping)
        if singular:
            logger.debug("%s arm: singular JJ^T, using transpose", chain.name)
        dofs = state.dofs + J_inv @ dx
        return LimbState(dofs, self.end_effector(chain, dofs))

    def recovery_target(self, chain: Chain) -> np.ndarray:
        return translation_of(self.skeleton.arc("root").location) + np.array(chain.recovery_offset)

    def solve(self, chain: Chain, state: LimbState, goal,
              is_shoot: bool = False) -> LimbState:
        """
        Fixed-budget IK for one arm; returns the new state, input untouched.

        While shooting with the hand far from the goal (error > 2) a single
        step toward the arm's recovery target is taken instead. Otherwise up
        to MAX_ITERATIONS steps run until the error drops below EPSILON.
        """
        goal = np.asarray(goal, dtype=float)
        error = float(np.linalg.norm(goal - state.end_effector))

        if error > LARGE_MOTION_ERROR and is_shoot:
            return self.ik_step(chain, state, self.recovery_target(chain))

        state = state.copy()
        iterations = 0
        while error > EPSILON and iterations < MAX_ITERATIONS:
            state = self.ik_step(chain, state, goal)
            error = float(np.linalg.norm(goal - state.end_effector))
            iterations += 1
        return state

    def update_right(self, goal, is_shoot: bool = False) -> float:
        self.right = self.solve(self.right_chain, self.right, goal, is_shoot)
        self.update_articulation()
        return float(np.linalg.norm(np.asarray(goal, dtype=float) - self.right.end_effector))

    def update_left(self, goal, is_shoot: bool = False) -> float:
        self.left = self.solve(self.left_chain, self.left, goal, is_shoot)
        self.update_articulation()
        return float(np.linalg.norm(np.asarray(goal, dtype=float) - self.left.end_effector))

    def update(self, goal, is_shoot: bool = False) -> tuple:
        return self.update_right(goal, is_shoot), self.update_left(goal, is_shoot)

    def world_transforms(self) -> list:
        return self.skeleton.world_transforms()
