"""Sensor readings, navigation state and plain IMU integration."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .lie import SE3, exp_so3


def _vec3(value) -> np.ndarray:
    return np.array(value, dtype=float).reshape(3)


def _zeros() -> np.ndarray:
    return np.zeros(3)


@dataclass
class IMU:
    """One IMU reading: gyroscope (rad/s) and accelerometer (m/s^2)."""

    timestamp: float = 0.0
    gyro: np.ndarray = field(default_factory=_zeros)
    acce: np.ndarray = field(default_factory=_zeros)

    def __post_init__(self) -> None:
        self.gyro = _vec3(self.gyro)
        self.acce = _vec3(self.acce)


@dataclass
class Odom:
    """Wheel encoder pulses counted over one odometry interval."""

    timestamp: float = 0.0
    left_pulse: float = 0.0
    right_pulse: float = 0.0


@dataclass
class GNSS:
    """A GNSS reading already converted to a pose in the map frame."""

    unix_time: float = 0.0
    utm_pose: SE3 = field(default_factory=SE3)
    heading_valid: bool = False


@dataclass
class NavState:
    """Full navigation state: rotation, position, velocity and IMU biases."""

    timestamp: float = 0.0
    R: np.ndarray = field(default_factory=lambda: np.eye(3))
    p: np.ndarray = field(default_factory=_zeros)
    v: np.ndarray = field(default_factory=_zeros)
    bg: np.ndarray = field(default_factory=_zeros)
    ba: np.ndarray = field(default_factory=_zeros)

    def __post_init__(self) -> None:
        self.R = np.array(self.R, dtype=float).reshape(3, 3)
        self.p = _vec3(self.p)
        self.v = _vec3(self.v)
        self.bg = _vec3(self.bg)
        self.ba = _vec3(self.ba)

    def se3(self) -> SE3:
        return SE3(self.R, self.p)


class IMUIntegration:
    """Dead reckoning by direct integration of IMU readings with fixed biases."""

    def __init__(self, gravity, init_bg, init_ba) -> None:
        self.gravity = _vec3(gravity)
        self.bg = _vec3(init_bg)
        self.ba = _vec3(init_ba)
        self.rotation = np.eye(3)
        self.velocity = np.zeros(3)
        self.position = np.zeros(3)
        self.timestamp = 0.0

    def add_imu(self, imu: IMU) -> None:
        dt = imu.timestamp - self.timestamp
        if 0 < dt < 0.1:
            acc_world = self.rotation @ (imu.acce - self.ba)
            self.position = (
                self.position
                + self.velocity * dt
                + 0.5 * self.gravity * dt * dt
                + 0.5 * acc_world * dt * dt
            )
            self.velocity = self.velocity + acc_world * dt + self.gravity * dt
            self.rotation = self.rotation @ exp_so3((imu.gyro - self.bg) * dt)
        self.timestamp = imu.timestamp

    def nav_state(self) -> NavState:
        return NavState(
            self.timestamp, self.rotation, self.position, self.velocity, self.bg, self.ba
        )