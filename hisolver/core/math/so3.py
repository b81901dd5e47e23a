"""SO(3) Lie group operations on rotation matrices."""

import numpy as np


def skew_symmetric(v: np.ndarray) -> np.ndarray:
    """Create skew-symmetric matrix from 3D vector."""
    if v.shape != (3,):
        raise ValueError(f"v must be 3-element vector, got shape {v.shape}")

    return np.array([
        [0, -v[2], v[1]],
        [v[2], 0, -v[0]],
        [-v[1], v[0], 0]
    ])


def so3_exp(phi: np.ndarray) -> np.ndarray:
    """Rodrigues formula: rotation matrix exp([phi]x)."""
    if phi.shape != (3,):
        raise ValueError(f"phi must be 3-element vector, got shape {phi.shape}")

    theta = np.linalg.norm(phi)
    K = skew_symmetric(phi)
    if theta < 1e-6:
        # Small angle approximation
        return np.eye(3) + K + 0.5 * K @ K

    return np.eye(3) + np.sin(theta) / theta * K + (1 - np.cos(theta)) / theta**2 * K @ K


def so3_log(R: np.ndarray) -> np.ndarray:
    """Rotation vector phi such that exp([phi]x) = R."""
    if R.shape != (3, 3):
        raise ValueError(f"R must be 3x3 matrix, got shape {R.shape}")

    trace = np.trace(R)
    theta = np.arccos(np.clip((trace - 1) / 2, -1, 1))
    vee = np.array([R[2, 1] - R[1, 2], R[0, 2] - R[2, 0], R[1, 0] - R[0, 1]])

    if theta < 1e-6:
        return 0.5 * vee

    if np.pi - theta < 1e-6:
        # Near pi the antisymmetric part vanishes; use the symmetric part
        B = 0.5 * (R + np.eye(3))
        axis = np.sqrt(np.clip(np.diag(B), 0, None))
        k = int(np.argmax(axis))
        for j in range(3):
            if j != k and B[k, j] < 0:
                axis[j] = -axis[j]
        axis /= np.linalg.norm(axis)
        if np.dot(axis, vee) < 0:
            axis = -axis
        return theta * axis

    return theta / (2 * np.sin(theta)) * vee


def so3_jr(phi: np.ndarray) -> np.ndarray:
    """Right Jacobian of SO(3): exp(phi + d) ~ exp(phi) exp(Jr d)."""
    theta = np.linalg.norm(phi)
    K = skew_symmetric(phi)
    if theta < 1e-6:
        return np.eye(3) - 0.5 * K + K @ K / 6.0

    return (np.eye(3) - (1 - np.cos(theta)) / theta**2 * K
            + (theta - np.sin(theta)) / theta**3 * K @ K)


def so3_jr_inv(phi: np.ndarray) -> np.ndarray:
    """Inverse right Jacobian of SO(3): log(exp(phi) exp(d)) ~ phi + Jr^-1 d."""
    theta = np.linalg.norm(phi)
    K = skew_symmetric(phi)
    if theta < 1e-6:
        return np.eye(3) + 0.5 * K + K @ K / 12.0

    coeff = 1.0 / theta**2 - (1 + np.cos(theta)) / (2 * theta * np.sin(theta))
    return np.eye(3) + 0.5 * K + coeff * K @ K
