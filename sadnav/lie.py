"""Rotation and rigid-transform helpers for SO(3) and SE(3)."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

_SMALL_ANGLE = 1e-10


def hat(v) -> np.ndarray:
    """Return the skew-symmetric matrix of a 3-vector."""
    x, y, z = np.asarray(v, dtype=float).reshape(3)
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def exp_so3(omega) -> np.ndarray:
    """Map a rotation vector to a rotation matrix (Rodrigues' formula)."""
    omega = np.asarray(omega, dtype=float).reshape(3)
    theta = float(np.linalg.norm(omega))
    k = hat(omega)
    if theta < _SMALL_ANGLE:
        return np.eye(3) + k
    return (
        np.eye(3)
        + math.sin(theta) / theta * k
        + (1.0 - math.cos(theta)) / (theta * theta) * (k @ k)
    )


def rotation_to_quaternion(rotation) -> np.ndarray:
    """Convert a rotation matrix to a unit quaternion ordered (w, x, y, z)."""
    m = np.asarray(rotation, dtype=float)
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0.0:
        s = math.sqrt(trace + 1.0) * 2.0
        q = [0.25 * s, (m[2, 1] - m[1, 2]) / s, (m[0, 2] - m[2, 0]) / s, (m[1, 0] - m[0, 1]) / s]
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = math.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2]) * 2.0
        q = [(m[2, 1] - m[1, 2]) / s, 0.25 * s, (m[0, 1] + m[1, 0]) / s, (m[0, 2] + m[2, 0]) / s]
    elif m[1, 1] > m[2, 2]:
        s = math.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2]) * 2.0
        q = [(m[0, 2] - m[2, 0]) / s, (m[0, 1] + m[1, 0]) / s, 0.25 * s, (m[1, 2] + m[2, 1]) / s]
    else:
        s = math.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1]) * 2.0
        q = [(m[1, 0] - m[0, 1]) / s, (m[0, 2] + m[2, 0]) / s, (m[1, 2] + m[2, 1]) / s, 0.25 * s]
    q = np.array(q)
    return q / np.linalg.norm(q)


def quaternion_to_rotation(q) -> np.ndarray:
    """Convert a quaternion (w, x, y, z) to a rotation matrix; it is normalised first."""
    q = np.asarray(q, dtype=float).reshape(4)
    norm = np.linalg.norm(q)
    if norm == 0.0:
        raise ValueError("quaternion has zero norm")
    w, x, y, z = q / norm
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
            [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
            [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
        ]
    )


def log_so3(rotation) -> np.ndarray:
    """Map a rotation matrix to its rotation vector."""
    q = rotation_to_quaternion(rotation)
    if q[0] < 0.0:
        q = -q
    w, vec = q[0], q[1:]
    n = float(np.linalg.norm(vec))
    if n < _SMALL_ANGLE:
        return 2.0 * vec / w
    theta = 2.0 * math.atan2(n, w)
    return vec * (theta / n)


def right_jacobian(omega) -> np.ndarray:
    """Right Jacobian of SO(3) at the rotation vector ``omega``."""
    omega = np.asarray(omega, dtype=float).reshape(3)
    theta = float(np.linalg.norm(omega))
    k = hat(omega)
    if theta < _SMALL_ANGLE:
        return np.eye(3) - 0.5 * k
    theta2 = theta * theta
    return (
        np.eye(3)
        - (1.0 - math.cos(theta)) / theta2 * k
        + (theta - math.sin(theta)) / (theta2 * theta) * (k @ k)
    )


@dataclass
class SE3:
    """A rigid transform made of a rotation matrix and a translation."""

    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        self.rotation = np.array(self.rotation, dtype=float).reshape(3, 3)
        self.translation = np.array(self.translation, dtype=float).reshape(3)

    def inverse(self) -> "SE3":
        rt = self.rotation.T
        return SE3(rt, -rt @ self.translation)

    def compose(self, other: "SE3") -> "SE3":
        """Return ``self * other``."""
        return SE3(
            self.rotation @ other.rotation,
            self.rotation @ other.translation + self.translation,
        )

    def __matmul__(self, other: "SE3") -> "SE3":
        return self.compose(other)

    def transform(self, point) -> np.ndarray:
        return self.rotation @ np.asarray(point, dtype=float).reshape(3) + self.translation

    def matrix(self) -> np.ndarray:
        m = np.eye(4)
        m[:3, :3] = self.rotation
        m[:3, 3] = self.translation
        return m