"""An 18-dimensional error-state Kalman filter fusing IMU, wheel speed and GNSS.

State order: p, v, R, bg, ba, g.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import numpy as np

from .lie import SE3, exp_so3, hat, log_so3
from .navstate import GNSS, IMU, NavState, Odom

logger = logging.getLogger(__name__)

_DIM = 18


@dataclass
class ESKFOptions:
    imu_dt: float = 0.01
    gyro_var: float = 1e-5
    acce_var: float = 1e-2
    bias_gyro_var: float = 1e-6
    bias_acce_var: float = 1e-4

    odom_var: float = 0.5
    odom_span: float = 0.1
    wheel_radius: float = 0.155
    circle_pulse: float = 1024.0

    gnss_pos_noise: float = 0.1
    gnss_height_noise: float = 0.1
    gnss_ang_noise: float = field(default_factory=lambda: math.radians(1.0))

    update_bias_gyro: bool = True
    update_bias_acce: bool = True


class ESKF:
    """Error-state Kalman filter with an IMU motion model."""

    def __init__(self, options: ESKFOptions | None = None) -> None:
        self.options = options if options is not None else ESKFOptions()
        self.current_time = 0.0
        self.p = np.zeros(3)
        self.v = np.zeros(3)
        self.R = np.eye(3)
        self.bg = np.zeros(3)
        self.ba = np.zeros(3)
        self.gravity = np.array([0.0, 0.0, -9.8])
        self._dx = np.zeros(_DIM)
        self.cov = np.eye(_DIM)
        self._Q = np.zeros((_DIM, _DIM))
        self._odom_noise = np.zeros((3, 3))
        self._gnss_noise = np.zeros((6, 6))
        self._first_gnss = True
        self._build_noise(self.options)

    def set_initial_conditions(
        self, options: ESKFOptions, init_bg, init_ba, gravity=(0.0, 0.0, -9.8)
    ) -> None:
        self._build_noise(options)
        self.options = options
        self.bg = np.array(init_bg, dtype=float).reshape(3)
        self.ba = np.array(init_ba, dtype=float).reshape(3)
        self.gravity = np.array(gravity, dtype=float).reshape(3)
        self.cov = np.eye(_DIM) * 1e-4

    def _build_noise(self, options: ESKFOptions) -> None:
        ev, et = options.acce_var, options.gyro_var
        eg, ea = options.bias_gyro_var, options.bias_acce_var
        self._Q = np.diag([0, 0, 0, ev, ev, ev, et, et, et, eg, eg, eg, ea, ea, ea, 0, 0, 0]).astype(float)
        # odometry noise is taken from the options currently held by the filter
        o2 = self.options.odom_var ** 2
        self._odom_noise = np.diag([o2, o2, o2])
        gp2 = options.gnss_pos_noise ** 2
        gh2 = options.gnss_height_noise ** 2
        ga2 = options.gnss_ang_noise ** 2
        self._gnss_noise = np.diag([gp2, gp2, gh2, ga2, ga2, ga2])

    def predict(self, imu: IMU) -> bool:
        """Propagate the state with one IMU reading; False if the reading was skipped."""
        dt = imu.timestamp - self.current_time
        if dt > 5 * self.options.imu_dt or dt < 0:
            logger.info("skip this imu because dt = %s", dt)
            self.current_time = imu.timestamp
            return False

        acc = imu.acce - self.ba
        gyr = imu.gyro - self.bg
        acc_world = self.R @ acc
        new_p = self.p + self.v * dt + 0.5 * acc_world * dt * dt + 0.5 * self.gravity * dt * dt
        new_v = self.v + acc_world * dt + self.gravity * dt
        new_R = self.R @ exp_so3(gyr * dt)
        self.R, self.v, self.p = new_R, new_v, new_p

        F = np.eye(_DIM)
        F[0:3, 3:6] = np.eye(3) * dt
        F[3:6, 6:9] = -self.R @ hat(acc) * dt
        F[3:6, 12:15] = -self.R * dt
        F[3:6, 15:18] = np.eye(3) * dt
        F[6:9, 6:9] = exp_so3(-gyr * dt)
        F[6:9, 9:12] = -np.eye(3) * dt

        self._dx = F @ self._dx
        self.cov = F @ self.cov @ F.T + self._Q
        self.current_time = imu.timestamp
        return True

    def observe_wheel_speed(self, odom: Odom) -> bool:
        H = np.zeros((3, _DIM))
        H[:, 3:6] = np.eye(3)
        K = self.cov @ H.T @ np.linalg.inv(H @ self.cov @ H.T + self._odom_noise)

        o = self.options
        scale = o.wheel_radius / o.circle_pulse * 2 * math.pi / o.odom_span
        average_vel = 0.5 * (odom.left_pulse * scale + odom.right_pulse * scale)
        vel_world = self.R @ np.array([average_vel, 0.0, 0.0])

        self._dx = K @ (vel_world - self.v)
        self.cov = (np.eye(_DIM) - K @ H) @ self.cov
        self._update_and_reset()
        return True

    def observe_gps(self, gnss: GNSS) -> bool:
        """Use a GNSS pose; the first one only sets the state."""
        if self._first_gnss:
            self.R = gnss.utm_pose.rotation.copy()
            self.p = gnss.utm_pose.translation.copy()
            self._first_gnss = False
            self.current_time = gnss.unix_time
            return True

        if not gnss.heading_valid:
            raise ValueError("GNSS observation requires a valid heading")
        self.observe_se3(gnss.utm_pose, self.options.gnss_pos_noise, self.options.gnss_ang_noise)
        self.current_time = gnss.unix_time
        return True

    def observe_se3(self, pose: SE3, trans_noise=0.1, ang_noise=math.radians(1.0)) -> bool:
        H = np.zeros((6, _DIM))
        H[0:3, 0:3] = np.eye(3)
        H[3:6, 6:9] = np.eye(3)
        V = np.diag([trans_noise] * 3 + [ang_noise] * 3)
        K = self.cov @ H.T @ np.linalg.inv(H @ self.cov @ H.T + V)

        innov = np.concatenate(
            [pose.translation - self.p, log_so3(self.R.T @ pose.rotation)]
        )
        self._dx = K @ innov
        self.cov = (np.eye(_DIM) - K @ H) @ self.cov
        self._update_and_reset()
        return True

    def _update_and_reset(self) -> None:
        dx = self._dx
        self.p = self.p + dx[0:3]
        self.v = self.v + dx[3:6]
        self.R = self.R @ exp_so3(dx[6:9])
        if self.options.update_bias_gyro:
            self.bg = self.bg + dx[9:12]
        if self.options.update_bias_acce:
            self.ba = self.ba + dx[12:15]
        self.gravity = self.gravity + dx[15:18]

        J = np.eye(_DIM)
        J[6:9, 6:9] = np.eye(3) - 0.5 * hat(dx[6:9])
        self.cov = J @ self.cov @ J.T
        self._dx = np.zeros(_DIM)

    def nominal_state(self) -> NavState:
        return NavState(self.current_time, self.R, self.p, self.v, self.bg, self.ba)

    def nominal_se3(self) -> SE3:
        return SE3(self.R, self.p)

    def set_state(self, state: NavState, gravity) -> None:
        self.current_time = state.timestamp
        self.R = state.R.copy()
        self.p = state.p.copy()
        self.v = state.v.copy()
        self.bg = state.bg.copy()
        self.ba = state.ba.copy()
        self.gravity = np.array(gravity, dtype=float).reshape(3)

    def set_cov(self, cov) -> None:
        cov = np.array(cov, dtype=float)
        if cov.shape != (_DIM, _DIM):
            raise ValueError(f"covariance must be {_DIM}x{_DIM}, got {cov.shape}")
        self.cov = cov