"""Estimation of initial IMU biases and gravity while the vehicle stands still."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

import numpy as np

from .navstate import IMU, Odom

logger = logging.getLogger(__name__)


@dataclass
class StaticIMUInitOptions:
    init_time_seconds: float = 10.0
    init_imu_queue_max_size: int = 2000
    static_odom_pulse: int = 5
    max_static_gyro_var: float = 0.5
    max_static_acce_var: float = 0.05
    gravity_norm: float = 9.81
    use_speed_for_static_checking: bool = True


def _mean_and_var(samples: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    return samples.mean(axis=0), samples.var(axis=0, ddof=1)


class StaticIMUInit:
    """Collect IMU readings while static and estimate biases, noise and gravity.

    Feed readings with :meth:`add_imu` (and :meth:`add_odom` when wheel speed is
    used to detect standstill); once ``init_success`` is true, the estimates are
    available as ``init_bg``, ``init_ba``, ``cov_gyro``, ``cov_acce`` and ``gravity``.
    """

    def __init__(self, options: StaticIMUInitOptions | None = None) -> None:
        self.options = options if options is not None else StaticIMUInitOptions()
        self.init_success = False
        self.cov_gyro = np.zeros(3)
        self.cov_acce = np.zeros(3)
        self.init_bg = np.zeros(3)
        self.init_ba = np.zeros(3)
        self.gravity = np.zeros(3)
        self.is_static = False
        self._queue: deque[IMU] = deque()
        self._current_time = 0.0
        self._init_start_time = 0.0

    def add_imu(self, imu: IMU) -> bool:
        """Add a reading; returns True once initialisation has succeeded."""
        if self.init_success:
            return True

        if self.options.use_speed_for_static_checking and not self.is_static:
            logger.warning("waiting for the vehicle to stand still")
            self._queue.clear()
            return False

        if not self._queue:
            self._init_start_time = imu.timestamp
        self._queue.append(imu)

        if imu.timestamp - self._init_start_time > self.options.init_time_seconds:
            self._try_init()

        while len(self._queue) > self.options.init_imu_queue_max_size:
            self._queue.popleft()

        self._current_time = imu.timestamp
        return False

    def add_odom(self, odom: Odom) -> bool:
        """Use wheel pulses to decide whether the vehicle is static."""
        if self.init_success:
            return True
        pulse = self.options.static_odom_pulse
        self.is_static = odom.left_pulse < pulse and odom.right_pulse < pulse
        self._current_time = odom.timestamp
        return True

    def _try_init(self) -> bool:
        if len(self._queue) < 10:
            return False

        gyros = np.array([imu.gyro for imu in self._queue])
        acces = np.array([imu.acce for imu in self._queue])

        mean_gyro, self.cov_gyro = _mean_and_var(gyros)
        mean_acce, self.cov_acce = _mean_and_var(acces)
        logger.info("mean acce: %s", mean_acce)
        self.gravity = -mean_acce / np.linalg.norm(mean_acce) * self.options.gravity_norm

        mean_acce, self.cov_acce = _mean_and_var(acces + self.gravity)

        gyro_norm = float(np.linalg.norm(self.cov_gyro))
        if gyro_norm > self.options.max_static_gyro_var:
            logger.error(
                "gyro noise too large: %s > %s", gyro_norm, self.options.max_static_gyro_var
            )
            return False
        acce_norm = float(np.linalg.norm(self.cov_acce))
        if acce_norm > self.options.max_static_acce_var:
            logger.error(
                "accelerometer noise too large: %s > %s",
                acce_norm,
                self.options.max_static_acce_var,
            )
            return False

        self.init_bg = mean_gyro
        self.init_ba = mean_acce
        logger.info(
            "IMU initialised after %.3f s, bg=%s, ba=%s, gyro var=%s, acce var=%s, grav=%s",
            self._current_time - self._init_start_time,
            self.init_bg,
            self.init_ba,
            self.cov_gyro,
            self.cov_acce,
            self.gravity,
        )
        self.init_success = True
        return True