# sadnav

Building blocks for vehicle localisation, in plain Python and numpy.

## What is in it

- **`sadnav.lie`**: rotation helpers `hat`, `exp_so3`, `log_so3`,
  `right_jacobian`, `rotation_to_quaternion` and `quaternion_to_rotation`
  (quaternions are ordered w, x, y, z). It also has the `SE3` rigid transform
  with `inverse`, `compose` (also available as `@`), `transform` and `matrix`.
- **`sadnav.navstate`**: the records `IMU`, `Odom`, `GNSS` and `NavState`
  (`NavState.se3()` returns the pose). `IMUIntegration` does dead reckoning
  from IMU readings with fixed biases. It integrates only readings that come
  between 0 and 0.1 s after the previous one.
- **`sadnav.static_imu_init`**: `StaticIMUInit` (options in
  `StaticIMUInitOptions`) collects IMU readings while the vehicle stands
  still. It then estimates the gyro and accelerometer biases, their variances
  and the gravity vector. By default it waits for `add_odom` to report
  standstill; set `use_speed_for_static_checking=False` when there is no wheel
  odometry.
- **`sadnav.eskf`**: an 18-dimensional error-state Kalman filter, `ESKF`
  (options in `ESKFOptions`), with state order p, v, R, bg, ba, g. It has
  these methods:
  - `predict(imu)`
  - `observe_wheel_speed(odom)`
  - `observe_gps(gnss)`: the first reading only sets the pose; later readings
    need a valid heading, or `ValueError` is raised.
  - `observe_se3(pose, trans_noise, ang_noise)`
  - `nominal_state()` and `nominal_se3()`
  - `set_state(state, gravity)` and `set_cov(cov)`
- **`sadnav.imu_preintegration`**: `IMUPreintegration` (options in
  `PreintegrationOptions`) accumulates relative rotation, velocity and
  position together with their covariance and bias Jacobians. It has these
  methods:
  - `predict(start, gravity)` predicts a state from a starting state.
  - `delta_rotation`, `delta_velocity` and `delta_position` return the
    preintegrated values corrected to first order for new biases.
- **Nearest-neighbour search** over clouds given as `(N, 3)` (or wider)
  arrays. Matches are `(reference_index, query_index)` pairs.
  - `sadnav.bfnn`: brute force with `bfnn_point`, `bfnn_point_k`,
    `bfnn_cloud`, `bfnn_cloud_mt` and `bfnn_cloud_mt_k`. The `_mt` functions
    use a thread pool.
  - `sadnav.gridnn`: `GridNN` with a `NearbyType` neighbourhood and `dim` 2
    or 3. Cell keys are the coordinates rounded to integers; the resolution
    is stored but does not scale them. `get_closest_point` returns
    `(point, index)` or `None`. The threaded cloud variant marks a failed
    query with `INVALID_ID`.
  - `sadnav.kdtree`: `KdTree` splits on the axis of largest variance at the
    mean. Approximate search is on by default (`alpha=0.1`); call
    `set_enable_ann(False, 1.0)` for exact results.
  - `sadnav.octo_tree`: `OctoTree` with `Box3D` cells. Search is exact by
    default; `set_approximate(True, alpha)` turns approximate search on.
  - Both trees have `get_closest_point(pt, k)`, which raises `ValueError` if
    `k` is larger than the tree. `get_closest_point_mt(cloud, k)` returns `k`
    pairs per query and fills missing ones with `INVALID_ID`.
- **`sadnav.images`**: `generate_bev_image` (top-down view) and
  `generate_range_image` (azimuth × elevation, coloured by range) return BGR
  `uint8` numpy arrays. `hsv_to_bgr` converts 8-bit HSV images with hue in
  0..179.
- **`sadnav.motion`**: `simulate_motion(options, steps)` yields `NavState`s
  of a vehicle driving in a circle while falling under gravity. Its
  parameters are set with `MotionOptions`.

## Installing

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Examples

```python
import numpy as np
from sadnav.navstate import IMU
from sadnav.eskf import ESKF

eskf = ESKF()
for i in range(1, 101):
    eskf.predict(IMU(timestamp=i * 0.01, gyro=np.zeros(3), acce=np.array([0.0, 0.0, 9.8])))
print(eskf.nominal_state())
```

```python
import numpy as np
from sadnav.kdtree import KdTree

cloud = np.random.default_rng(0).random((1000, 3))
tree = KdTree()
tree.build_tree(cloud)
tree.set_enable_ann(False, 1.0)
print(tree.get_closest_point(cloud[0], 5))
```

## Command line

`sadnav-motion` runs the circular-motion simulation. For each step it prints
one line with the time, the position and the velocity. It takes these
options:

- `--angular_velocity`: degrees per second
- `--linear_velocity`: m/s
- `--gravity`: m/s^2
- `--use_quaternion`
- `--steps`: default 200
- `--realtime`: waits one step length between lines

```
sadnav-motion --steps 20
sadnav-motion --help
```

## What it does not do

- It reads and writes no files. Dataset logs, point-cloud files and images
  on disk are up to the caller. The image functions return arrays and do not
  save them.
- It does not convert latitude and longitude to map coordinates. A `GNSS`
  record must already hold a pose in the map frame.
- It has no graph optimisation and no map-based localisation. Preintegration
  results are only predicted, never optimised.
- It has no graphical display. The motion command prints text only.