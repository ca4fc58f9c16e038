"""
Vector / matrix kernel shared by the ball, net and IK code.

Vectors are plain float64 numpy arrays of shape (3,), transforms are (4, 4)
homogeneous matrices, Jacobians are (3, N).
"""

import numpy as np

# |det(J J^T)| at or below this is treated as singular
SINGULAR_DET_TOL: float = 1e-12


def vec3(x: float = 0.0, y: float = 0.0, z: float = 0.0) -> np.ndarray:
    return np.array([x, y, z], dtype=float)


def normalized(v: np.ndarray) -> np.ndarray:
    """Unit vector along v. A zero vector stays zero instead of turning into NaN."""
    n = float(np.linalg.norm(v))
    if n < 1e-12:
        return np.zeros_like(v, dtype=float)
    return v / n


def identity() -> np.ndarray:
    return np.eye(4)


def translation(x: float, y: float, z: float) -> np.ndarray:
    m = np.eye(4)
    m[:3, 3] = (x, y, z)
    return m


def scale(x: float, y: float, z: float) -> np.ndarray:
    return np.diag([x, y, z, 1.0])


def rotation(angle: float, x: float, y: float, z: float) -> np.ndarray:
    """Right-handed rotation of `angle` radians about axis (x, y, z) (Rodrigues)."""
    axis = normalized(np.array([x, y, z], dtype=float))
    ax, ay, az = axis
    c, s = np.cos(angle), np.sin(angle)
    t = 1.0 - c
    m = np.eye(4)
    m[:3, :3] = [
        [t * ax * ax + c,      t * ax * ay - s * az, t * ax * az + s * ay],
        [t * ax * ay + s * az, t * ay * ay + c,      t * ay * az - s * ax],
        [t * ax * az - s * ay, t * ay * az + s * ax, t * az * az + c],
    ]
    return m


def transform_point(m: np.ndarray, p) -> np.ndarray:
    """Apply homogeneous transform m to point p."""
    p = np.asarray(p, dtype=float)
    return (m @ np.append(p, 1.0))[:3]


def translation_of(m: np.ndarray) -> np.ndarray:
    return np.array(m[:3, 3], dtype=float)


def pseudo_inverse(J: np.ndarray, damping: float = 0.0):
    """
    Right pseudo-inverse of a wide Jacobian.

        J+ = J^T (J J^T + damping^2 I)^-1

    Args:
        J: (M, N) matrix, M <= N.
        damping: Damped-least-squares factor. 0 gives the plain pseudo-inverse.

    Returns:
        (J_pinv, singular). When the (damped) J J^T has a zero determinant
        J_pinv is J^T itself and `singular` is True.
    """
    J = np.asarray(J, dtype=float)
    JJt = J @ J.T
    if damping:
        JJt = JJt + (damping ** 2) * np.eye(JJt.shape[0])
    if abs(np.linalg.det(JJt)) <= SINGULAR_DET_TOL:
        return J.T.copy(), True
    return J.T @ np.linalg.inv(JJt), False
