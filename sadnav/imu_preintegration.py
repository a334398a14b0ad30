"""IMU preintegration between two keyframes, with first-order bias correction."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .lie import exp_so3, hat, right_jacobian
from .navstate import IMU, NavState


def _vec3(value) -> np.ndarray:
    return np.array(value, dtype=float).reshape(3)


@dataclass
class PreintegrationOptions:
    """Initial biases and measurement noise (standard deviations)."""

    init_bg: np.ndarray = field(default_factory=lambda: np.zeros(3))
    init_ba: np.ndarray = field(default_factory=lambda: np.zeros(3))
    noise_gyro: float = 1e-2
    noise_acce: float = 1e-1


class IMUPreintegration:
    """Accumulates IMU readings into relative rotation, velocity and position.

    The Jacobians of the preintegrated quantities with respect to the biases are
    kept, so results can be corrected for a changed bias without re-integrating.
    """

    def __init__(self, options: PreintegrationOptions | None = None) -> None:
        options = options if options is not None else PreintegrationOptions()
        self.dt = 0.0
        self.cov = np.zeros((9, 9))
        ng2 = options.noise_gyro * options.noise_gyro
        na2 = options.noise_acce * options.noise_acce
        self.noise_gyro_acce = np.diag([ng2, ng2, ng2, na2, na2, na2])

        self.bg = _vec3(options.init_bg)
        self.ba = _vec3(options.init_ba)

        self.dR = np.eye(3)
        self.dv = np.zeros(3)
        self.dp = np.zeros(3)

        self.dR_dbg = np.zeros((3, 3))
        self.dV_dbg = np.zeros((3, 3))
        self.dV_dba = np.zeros((3, 3))
        self.dP_dbg = np.zeros((3, 3))
        self.dP_dba = np.zeros((3, 3))

    def integrate(self, imu: IMU, dt: float) -> None:
        """Add one IMU reading held over ``dt`` seconds."""
        gyr = imu.gyro - self.bg
        acc = imu.acce - self.ba
        dR = self.dR
        dt2 = dt * dt

        self.dp = self.dp + self.dv * dt + 0.5 * (dR @ acc) * dt2
        self.dv = self.dv + (dR @ acc) * dt

        A = np.eye(9)
        B = np.zeros((9, 6))
        acc_hat = hat(acc)

        A[3:6, 0:3] = -(dR @ acc_hat) * dt
        A[6:9, 0:3] = -0.5 * (dR @ acc_hat) * dt2
        A[6:9, 3:6] = np.eye(3) * dt
        B[3:6, 3:6] = dR * dt
        B[6:9, 3:6] = 0.5 * dR * dt2

        self.dP_dba = self.dP_dba + self.dV_dba * dt - 0.5 * dR * dt2
        self.dP_dbg = self.dP_dbg + self.dV_dbg * dt - 0.5 * (dR @ acc_hat @ self.dR_dbg) * dt2
        self.dV_dba = self.dV_dba - dR * dt
        self.dV_dbg = self.dV_dbg - (dR @ acc_hat @ self.dR_dbg) * dt

        omega = gyr * dt
        right_j = right_jacobian(omega)
        delta_r = exp_so3(omega)
        self.dR = dR @ delta_r

        A[0:3, 0:3] = delta_r.T
        B[0:3, 0:3] = right_j * dt

        self.cov = A @ self.cov @ A.T + B @ self.noise_gyro_acce @ B.T
        self.dR_dbg = delta_r.T @ self.dR_dbg - right_j * dt
        self.dt += dt

    def predict(self, start: NavState, gravity=(0.0, 0.0, -9.81)) -> NavState:
        """Predict the state reached from ``start`` after the integrated interval."""
        g = _vec3(gravity)
        rj = start.R @ self.dR
        vj = start.R @ self.dv + start.v + g * self.dt
        pj = start.R @ self.dp + start.p + start.v * self.dt + 0.5 * g * self.dt * self.dt
        return NavState(start.timestamp + self.dt, rj, pj, vj, self.bg, self.ba)

    def delta_rotation(self, bg) -> np.ndarray:
        """Relative rotation corrected for gyroscope bias ``bg``."""
        return self.dR @ exp_so3(self.dR_dbg @ (_vec3(bg) - self.bg))

    def delta_velocity(self, bg, ba) -> np.ndarray:
        """Relative velocity corrected for biases ``bg`` and ``ba``."""
        return self.dv + self.dV_dbg @ (_vec3(bg) - self.bg) + self.dV_dba @ (_vec3(ba) - self.ba)

    def delta_position(self, bg, ba) -> np.ndarray:
        """Relative position corrected for biases ``bg`` and ``ba``."""
        return self.dp + self.dP_dbg @ (_vec3(bg) - self.bg) + self.dP_dba @ (_vec3(ba) - self.ba)