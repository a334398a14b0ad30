"""Simulation of a vehicle driving in a circle while falling under gravity."""

from __future__ import annotations

import argparse
import itertools
import logging
import math
import sys
import time
from collections.abc import Iterator
from dataclasses import dataclass

import numpy as np

from .lie import exp_so3, quaternion_to_rotation, rotation_to_quaternion
from .navstate import NavState

logger = logging.getLogger(__name__)


@dataclass
class MotionOptions:
    """Parameters of the circular motion.

    ``angular_velocity`` is in degrees per second, ``linear_velocity`` in m/s
    along the body x axis, ``gravity`` in m/s^2 and ``dt`` the step in seconds.
    """

    angular_velocity: float = 10.0
    linear_velocity: float = 5.0
    use_quaternion: bool = False
    gravity: float = 9.8
    dt: float = 0.05


def _quat_mul(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    aw, ax, ay, az = a
    bw, bx, by, bz = b
    return np.array(
        [
            aw * bw - ax * bx - ay * by - az * bz,
            aw * bx + ax * bw + ay * bz - az * by,
            aw * by - ax * bz + ay * bw + az * bx,
            aw * bz + ax * by - ay * bx + az * bw,
        ]
    )


def simulate_motion(options: MotionOptions | None = None, steps=None) -> Iterator[NavState]:
    """Yield the vehicle state once per step; runs forever when ``steps`` is None.

    Each yielded state holds the pose after the step and the world velocity
    the vehicle had at the start of it.
    """
    options = options if options is not None else MotionOptions()
    if options.dt <= 0:
        raise ValueError(f"dt must be positive, got {options.dt}")
    if steps is not None and steps < 0:
        raise ValueError(f"steps must not be negative, got {steps}")
    return _run(options, steps)


def _run(options: MotionOptions, steps) -> Iterator[NavState]:
    dt = options.dt
    omega = np.array([0.0, 0.0, math.radians(options.angular_velocity)])
    v_body = np.array([options.linear_velocity, 0.0, 0.0])
    w_a = np.array([0.0, 0.0, -options.gravity])
    rotation = np.eye(3)
    position = np.zeros(3)

    counter = itertools.count(1) if steps is None else range(1, steps + 1)
    for i in counter:
        v_world = rotation @ v_body
        v_start = v_world.copy()

        position = position + v_world * dt + 0.5 * w_a * dt * dt
        v_world = v_world + w_a * dt
        v_body = rotation.T @ v_world

        if options.use_quaternion:
            q = _quat_mul(
                rotation_to_quaternion(rotation),
                np.array([1.0, *(0.5 * omega * dt)]),
            )
            rotation = quaternion_to_rotation(q / np.linalg.norm(q))
        else:
            rotation = rotation @ exp_so3(omega * dt)

        logger.debug("v_body: %s", v_body)
        yield NavState(i * dt, rotation, position, v_start)


def main(argv=None) -> int:
    """Run the simulation and print time, position and velocity per step."""
    parser = argparse.ArgumentParser(description="Simulate a vehicle moving in a circle.")
    parser.add_argument("--angular_velocity", type=float, default=10.0,
                        help="angular velocity in degrees per second")
    parser.add_argument("--linear_velocity", type=float, default=5.0,
                        help="forward speed in m/s")
    parser.add_argument("--use_quaternion", action="store_true",
                        help="update the rotation with quaternions")
    parser.add_argument("--gravity", type=float, default=9.8,
                        help="gravitational acceleration in m/s^2")
    parser.add_argument("--steps", type=int, default=200, help="number of steps")
    parser.add_argument("--realtime", action="store_true",
                        help="wait one step length between outputs")
    args = parser.parse_args(argv)

    options = MotionOptions(
        angular_velocity=args.angular_velocity,
        linear_velocity=args.linear_velocity,
        use_quaternion=args.use_quaternion,
        gravity=args.gravity,
    )
    try:
        states = simulate_motion(options, args.steps)
    except ValueError as err:
        print(err, file=sys.stderr)
        return 1

    for state in states:
        p, v = state.p, state.v
        print(f"{state.timestamp:.3f} {p[0]:.9g} {p[1]:.9g} {p[2]:.9g} "
              f"{v[0]:.9g} {v[1]:.9g} {v[2]:.9g}")
        if args.realtime:
            time.sleep(options.dt)
    return 0