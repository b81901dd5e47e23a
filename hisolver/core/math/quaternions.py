"""Unit quaternions representing SO(3) configurations.

Quaternions are stored scalar first, [w, x, y, z], and handled as a scalar
part w and a vector part v.
"""

import numpy as np

from .so3 import skew_symmetric


def _check(q: np.ndarray) -> np.ndarray:
    q = np.asarray(q, dtype=float)
    if q.shape != (4,):
        raise ValueError(f"Quaternion must have 4 coefficients, got shape {q.shape}")
    return q


def quat_normalize(q: np.ndarray) -> np.ndarray:
    """Scale a quaternion to unit norm."""
    q = _check(q)
    norm = np.linalg.norm(q)
    if norm < 1e-12:
        raise ValueError("Zero quaternion has no rotation")
    return q / norm


def quat_from_axis_angle(axis: np.ndarray, angle: float) -> np.ndarray:
    """Rotation of ``angle`` radians about ``axis``.

    Args:
        axis: Rotation axis, any nonzero length
        angle: Rotation angle in radians

    Returns:
        Unit quaternion [w, x, y, z]; identity for a null axis
    """
    axis = np.asarray(axis, dtype=float)
    if axis.shape != (3,):
        raise ValueError(f"Axis must have 3 coefficients, got shape {axis.shape}")
    length = np.linalg.norm(axis)
    if length < 1e-12:
        return np.array([1.0, 0.0, 0.0, 0.0])
    return np.concatenate([[np.cos(0.5 * angle)], np.sin(0.5 * angle) / length * axis])


def quat_to_matrix(q: np.ndarray) -> np.ndarray:
    """Rotation matrix R = (w^2 - v.v) I + 2 v v^T + 2 w [v]x."""
    q = quat_normalize(q)
    w, v = q[0], q[1:]
    return (w * w - v @ v) * np.eye(3) + 2.0 * np.outer(v, v) + 2.0 * w * skew_symmetric(v)


def quat_multiply(q1: np.ndarray, q2: np.ndarray) -> np.ndarray:
    """Hamilton product q1 * q2."""
    q1, q2 = _check(q1), _check(q2)
    w1, v1 = q1[0], q1[1:]
    w2, v2 = q2[0], q2[1:]
    return np.concatenate([[w1 * w2 - v1 @ v2], w1 * v2 + w2 * v1 + np.cross(v1, v2)])


def quat_conjugate(q: np.ndarray) -> np.ndarray:
    """Inverse rotation of a unit quaternion."""
    q = _check(q)
    return np.concatenate([q[:1], -q[1:]])


def quat_from_rotvec(phi: np.ndarray) -> np.ndarray:
    """Quaternion of the rotation exp([phi]x)."""
    theta = np.linalg.norm(phi)
    if theta < 1e-12:
        # First order, renormalized
        return quat_normalize(np.concatenate([[1.0], 0.5 * phi]))
    return quat_from_axis_angle(phi / theta, theta)


def quat_to_rotvec(q: np.ndarray) -> np.ndarray:
    """Rotation vector (axis * angle) of a unit quaternion, angle in [0, pi]."""
    q = quat_normalize(q)
    if q[0] < 0:
        q = -q
    w, v = q[0], q[1:]
    s = np.linalg.norm(v)
    if s < 1e-12:
        return 2.0 * v
    return 2.0 * np.arctan2(s, w) / s * v
