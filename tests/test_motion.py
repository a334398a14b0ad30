import math

import numpy as np
import pytest

from sadnav.motion import MotionOptions, main, simulate_motion


def _yaw(rotation):
    return math.atan2(rotation[1, 0], rotation[0, 0])


def test_zero_steps_yields_nothing():
    assert list(simulate_motion(MotionOptions(), 0)) == []


def test_step_count_and_timestamps():
    opts = MotionOptions()
    states = list(simulate_motion(opts, 10))
    assert len(states) == 10
    assert states[-1].timestamp == pytest.approx(10 * opts.dt)


def test_negative_steps_rejected():
    with pytest.raises(ValueError):
        simulate_motion(MotionOptions(), -1)


def test_non_positive_dt_rejected():
    with pytest.raises(ValueError):
        simulate_motion(MotionOptions(dt=0.0), 5)


def test_speed_constant_without_gravity():
    opts = MotionOptions(gravity=0.0)
    for state in simulate_motion(opts, 50):
        assert np.linalg.norm(state.v) == pytest.approx(opts.linear_velocity)
        assert state.p[2] == pytest.approx(0.0)


def test_first_velocity_along_body_x():
    opts = MotionOptions()
    first = next(iter(simulate_motion(opts, 1)))
    np.testing.assert_allclose(first.v, [opts.linear_velocity, 0.0, 0.0])


def test_vertical_motion_is_free_fall():
    opts = MotionOptions()
    for n, state in enumerate(simulate_motion(opts, 40), start=1):
        t = n * opts.dt
        assert state.p[2] == pytest.approx(-0.5 * opts.gravity * t * t)
        assert state.v[2] == pytest.approx(-opts.gravity * (n - 1) * opts.dt)


def test_yaw_grows_linearly_with_exp_update():
    opts = MotionOptions()
    states = list(simulate_motion(opts, 20))
    expected = 20 * math.radians(opts.angular_velocity) * opts.dt
    assert _yaw(states[-1].R) == pytest.approx(expected)


def test_quaternion_update_close_to_exp_update():
    exp_states = list(simulate_motion(MotionOptions(use_quaternion=False), 30))
    quat_states = list(simulate_motion(MotionOptions(use_quaternion=True), 30))
    for a, b in zip(exp_states, quat_states):
        np.testing.assert_allclose(a.R, b.R, atol=1e-4)
        np.testing.assert_allclose(a.p, b.p, atol=1e-4)


def test_rotations_stay_orthonormal():
    for state in simulate_motion(MotionOptions(use_quaternion=True), 100):
        np.testing.assert_allclose(state.R @ state.R.T, np.eye(3), atol=1e-9)
        assert np.linalg.det(state.R) == pytest.approx(1.0)


def test_horizontal_path_stays_near_circle():
    opts = MotionOptions(gravity=0.0)
    omega = math.radians(opts.angular_velocity)
    radius = opts.linear_velocity / omega
    centre = np.array([0.0, radius])
    for state in simulate_motion(opts, 300):
        dist = np.linalg.norm(state.p[:2] - centre)
        assert dist == pytest.approx(radius, rel=1e-2)


def test_unbounded_generator():
    gen = simulate_motion(MotionOptions(), None)
    states = [next(gen) for _ in range(5)]
    assert [s.timestamp for s in states] == pytest.approx(
        [i * MotionOptions().dt for i in range(1, 6)]
    )


def test_main_prints_one_line_per_step(capsys):
    assert main(["--steps", "7", "--gravity", "0"]) == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 7
    assert all(len(line.split()) == 7 for line in lines)


def test_main_rejects_negative_steps(capsys):
    assert main(["--steps", "-3"]) == 1
    assert "steps" in capsys.readouterr().err