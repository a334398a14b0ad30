"""Brute-force nearest-neighbour search in point clouds.

A cloud is anything convertible to an ``(N, >=3)`` array; only x, y, z are used.
Matches are pairs ``(index_in_reference, index_in_query)``.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import numpy as np

INVALID_ID = 2**64 - 1


def _points(cloud) -> np.ndarray:
    arr = np.asarray(cloud, dtype=float)
    if arr.size == 0:
        return np.zeros((0, 3))
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2 or arr.shape[1] < 3:
        raise ValueError(f"cloud must have shape (N, 3) or wider, got {arr.shape}")
    return arr[:, :3]


def _squared_distances(points: np.ndarray, point) -> np.ndarray:
    diff = points - np.asarray(point, dtype=float).reshape(-1)[:3]
    return np.einsum("ij,ij->i", diff, diff)


def _nearest(points: np.ndarray, point) -> int:
    if len(points) == 0:
        raise ValueError("cannot search an empty cloud")
    return int(np.argmin(_squared_distances(points, point)))


def _nearest_k(points: np.ndarray, point, k: int) -> list[int]:
    if k < 0 or k > len(points):
        raise ValueError(f"k must be between 0 and the cloud size {len(points)}, got {k}")
    order = np.argsort(_squared_distances(points, point), kind="stable")
    return [int(i) for i in order[:k]]


def bfnn_point(cloud, point) -> int:
    """Index of the point in ``cloud`` nearest to ``point`` (first one on ties)."""
    return _nearest(_points(cloud), point)


def bfnn_point_k(cloud, point, k=5) -> list[int]:
    """Indices of the ``k`` nearest points, closest first."""
    return _nearest_k(_points(cloud), point, k)


def bfnn_cloud(cloud1, cloud2) -> list[tuple[int, int]]:
    """Nearest point of ``cloud1`` for every point of ``cloud2``."""
    ref, query = _points(cloud1), _points(cloud2)
    return [(_nearest(ref, q), i) for i, q in enumerate(query)]


def bfnn_cloud_mt(cloud1, cloud2) -> list[tuple[int, int]]:
    """Same as :func:`bfnn_cloud`, with queries spread over worker threads."""
    ref, query = _points(cloud1), _points(cloud2)
    with ThreadPoolExecutor() as pool:
        nearest = list(pool.map(lambda q: _nearest(ref, q), query))
    return [(n, i) for i, n in enumerate(nearest)]


def bfnn_cloud_mt_k(cloud1, cloud2, k=5) -> list[tuple[int, int]]:
    """The ``k`` nearest points of ``cloud1`` for every point of ``cloud2``.

    The result holds ``k`` consecutive pairs per query, closest first.
    """
    ref, query = _points(cloud1), _points(cloud2)
    with ThreadPoolExecutor() as pool:
        neighbours = list(pool.map(lambda q: _nearest_k(ref, q, k), query))
    return [(n, i) for i, found in enumerate(neighbours) for n in found]