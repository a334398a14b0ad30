"""Inertial navigation, error-state filtering, IMU preintegration and point-cloud nearest-neighbour search."""

__version__ = "0.1.0"