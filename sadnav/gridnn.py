"""Grid-based approximate nearest-neighbour search in 2D or 3D."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from enum import Enum

import numpy as np

from .bfnn import INVALID_ID, bfnn_point

logger = logging.getLogger(__name__)


class NearbyType(Enum):
    CENTER = "center"
    NEARBY4 = "nearby4"  # 2D: up, down, left, right
    NEARBY8 = "nearby8"  # 2D: plus the four corners
    NEARBY6 = "nearby6"  # 3D: the six face neighbours
    NEARBY14 = "nearby14"  # 3D: faces plus the eight corners


_NEARBY_2D = {
    NearbyType.CENTER: [(0, 0)],
    NearbyType.NEARBY4: [(0, 0), (-1, 0), (1, 0), (0, 1), (0, -1)],
    NearbyType.NEARBY8: [
        (0, 0), (-1, 0), (1, 0), (0, 1), (0, -1),
        (-1, -1), (-1, 1), (1, -1), (1, 1),
    ],
}

_FACES_3D = [(0, 0, 0), (-1, 0, 0), (1, 0, 0), (0, 1, 0), (0, -1, 0), (0, 0, -1), (0, 0, 1)]

_NEARBY_3D = {
    NearbyType.CENTER: [(0, 0, 0)],
    NearbyType.NEARBY6: _FACES_3D,
    NearbyType.NEARBY14: _FACES_3D
    + [
        (-1, -1, 1), (-1, 1, 1), (1, 1, 1), (1, -1, 1),
        (-1, -1, -1), (-1, 1, -1), (1, 1, -1), (1, -1, -1),
    ],
}


def _points(cloud) -> np.ndarray:
    arr = np.asarray(cloud, dtype=float)
    if arr.size == 0:
        return np.zeros((0, 3))
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2 or arr.shape[1] < 3:
        raise ValueError(f"cloud must have shape (N, 3) or wider, got {arr.shape}")
    return arr[:, :3]


class GridNN:
    """Nearest neighbour by hashing points into integer cells.

    Cell keys are the point coordinates rounded half away from zero; the
    resolution is stored but does not scale the keys.
    """

    def __init__(self, resolution=0.1, nearby_type=NearbyType.NEARBY4, dim=2) -> None:
        if dim not in (2, 3):
            raise ValueError(f"dim must be 2 or 3, got {dim}")
        self.dim = dim
        self.resolution = float(resolution)
        self.inv_resolution = 1.0 / self.resolution
        self.nearby_type = nearby_type

        if dim == 2 and nearby_type not in _NEARBY_2D:
            logger.info("2D grid does not support %s, using nearby4 instead.", nearby_type.value)
            self.nearby_type = NearbyType.NEARBY4
        elif dim == 3 and nearby_type not in _NEARBY_3D:
            logger.info("3D grid does not support %s, using nearby6 instead.", nearby_type.value)
            self.nearby_type = NearbyType.NEARBY6

        table = _NEARBY_2D if dim == 2 else _NEARBY_3D
        self.nearby_grids = [np.array(d, dtype=int) for d in table[self.nearby_type]]
        self._grids: dict[tuple[int, ...], list[int]] = {}
        self._cloud = np.zeros((0, 3))

    def _pos_to_grid(self, pt) -> np.ndarray:
        coords = np.asarray(pt, dtype=float).reshape(-1)[: self.dim]
        return (np.sign(coords) * np.floor(np.abs(coords) + 0.5)).astype(int)

    def set_point_cloud(self, cloud) -> None:
        """Index the reference cloud into grid cells."""
        self._cloud = _points(cloud)
        self._grids = {}
        for idx, pt in enumerate(self._cloud):
            self._grids.setdefault(tuple(self._pos_to_grid(pt)), []).append(idx)
        logger.info("grids: %d", len(self._grids))

    def get_closest_point(self, pt):
        """Return ``(closest_point, index)`` or None if no nearby cell has points."""
        key = self._pos_to_grid(pt)
        candidates = [
            idx
            for delta in self.nearby_grids
            for idx in self._grids.get(tuple(key + delta), ())
        ]
        if not candidates:
            return None
        local = bfnn_point(self._cloud[candidates], pt)
        idx = candidates[local]
        return self._cloud[idx].copy(), idx

    def get_closest_point_for_cloud(self, ref, query) -> list[tuple[int, int]]:
        """Matches ``(ref_index, query_index)`` for every query point that found one.

        ``ref`` is not used: the reference is the cloud given to :meth:`set_point_cloud`.
        """
        matches = []
        for i, q in enumerate(_points(query)):
            found = self.get_closest_point(q)
            if found is not None:
                matches.append((found[1], i))
        return matches

    def get_closest_point_for_cloud_mt(self, ref, query) -> list[tuple[int, int]]:
        """One entry per query point; failures are ``(INVALID_ID, INVALID_ID)``."""
        points = _points(query)
        with ThreadPoolExecutor() as pool:
            found = list(pool.map(self.get_closest_point, points))
        return [
            (f[1], i) if f is not None else (INVALID_ID, INVALID_ID)
            for i, f in enumerate(found)
        ]