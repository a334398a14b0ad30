[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sadnav"
version = "0.1.0"
description = "Inertial navigation, error-state Kalman filtering, IMU preintegration and point-cloud nearest-neighbour search"
requires-python = ">=3.10"
dependencies = ["numpy"]
keywords = [
    "slam",
    "imu",
    "eskf",
    "kalman-filter",
    "preintegration",
    "kdtree",
    "octree",
    "nearest-neighbour",
    "point-cloud",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
sadnav-motion = "sadnav.motion:main"

[tool.hatch.build.targets.wheel]
packages = ["sadnav"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
