"""Octree for exact and approximate k-nearest-neighbour search in 3D clouds."""

from __future__ import annotations

import heapq
import itertools
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import numpy as np

from .bfnn import INVALID_ID

logger = logging.getLogger(__name__)


def _points(cloud) -> np.ndarray:
    arr = np.asarray(cloud, dtype=float)
    if arr.size == 0:
        return np.zeros((0, 3))
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2 or arr.shape[1] < 3:
        raise ValueError(f"cloud must have shape (N, 3) or wider, got {arr.shape}")
    return arr[:, :3].copy()


@dataclass(frozen=True)
class Box3D:
    """Axis-aligned box given by its extent on each axis."""

    min_x: float = 0.0
    max_x: float = 0.0
    min_y: float = 0.0
    max_y: float = 0.0
    min_z: float = 0.0
    max_z: float = 0.0
    lower: np.ndarray = field(init=False, repr=False, compare=False)
    upper: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "lower", np.array([self.min_x, self.min_y, self.min_z], dtype=float))
        object.__setattr__(self, "upper", np.array([self.max_x, self.max_y, self.max_z], dtype=float))

    def inside(self, pt) -> bool:
        """True if ``pt`` lies in the box, borders included."""
        p = np.asarray(pt, dtype=float).reshape(-1)[:3]
        return bool(np.all(p <= self.upper) and np.all(p >= self.lower))

    def distance(self, pt) -> float:
        """Largest distance by which ``pt`` lies outside the box on any axis; 0 inside."""
        p = np.asarray(pt, dtype=float).reshape(-1)[:3]
        outside = np.maximum(self.lower - p, p - self.upper)
        return float(max(0.0, float(outside.max())))


@dataclass(eq=False)
class OctoTreeNode:
    """A node with its box; a leaf holds a point index, or -1 when empty."""

    id: int = -1
    point_idx: int = -1
    box: Box3D = field(default_factory=Box3D)
    children: list["OctoTreeNode"] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return not self.children


class OctoTree:
    """Octree that splits every node with more than one point into eight octants.

    With approximate search on, a child is only visited when the squared
    distance to its box is below ``alpha`` times the current k-th squared distance.
    """

    def __init__(self) -> None:
        self.approximate = False
        self.alpha = 1.0
        self.root: OctoTreeNode | None = None
        self._cloud = np.zeros((0, 3))
        self._nodes: dict[int, OctoTreeNode] = {}
        self._size = 0
        self._next_id = 0

    def __len__(self) -> int:
        """Number of non-empty leaves, i.e. points stored in the tree."""
        return self._size

    @property
    def size(self) -> int:
        return self._size

    def set_approximate(self, use_ann=True, alpha=0.1) -> None:
        self.approximate = bool(use_ann)
        self.alpha = float(alpha)

    def clear(self) -> None:
        self._nodes = {}
        self.root = None
        self._size = 0
        self._next_id = 0

    def _new_node(self, box: Box3D | None = None) -> OctoTreeNode:
        node = OctoTreeNode(id=self._next_id, box=box if box is not None else Box3D())
        self._next_id += 1
        return node

    def build_tree(self, cloud) -> bool:
        """Build the tree from ``cloud``; returns False for an empty cloud."""
        points = _points(cloud)
        if len(points) == 0:
            return False

        self._cloud = points
        self.clear()
        lo, hi = points.min(axis=0), points.max(axis=0)
        self.root = self._new_node(Box3D(lo[0], hi[0], lo[1], hi[1], lo[2], hi[2]))
        self._insert(list(range(len(points))), self.root)
        return True

    def _insert(self, indices: list[int], node: OctoTreeNode) -> None:
        self._nodes[node.id] = node
        if not indices:
            return
        # Identical points cannot be separated; keep the first one in a single leaf.
        if len(indices) == 1 or not np.any(np.ptp(self._cloud[indices], axis=0)):
            self._size += 1
            node.point_idx = indices[0]
            return

        for child, child_indices in zip(*self._expand_node(node, indices)):
            self._insert(child_indices, child)

    def _expand_node(self, node: OctoTreeNode, indices: list[int]):
        b = node.box
        cx = 0.5 * (b.min_x + b.max_x)
        cy = 0.5 * (b.min_y + b.max_y)
        cz = 0.5 * (b.min_z + b.max_z)
        boxes = [
            Box3D(b.min_x, cx, b.min_y, cy, b.min_z, cz),
            Box3D(cx, b.max_x, b.min_y, cy, b.min_z, cz),
            Box3D(b.min_x, cx, cy, b.max_y, b.min_z, cz),
            Box3D(cx, b.max_x, cy, b.max_y, b.min_z, cz),
            Box3D(b.min_x, cx, b.min_y, cy, cz, b.max_z),
            Box3D(cx, b.max_x, b.min_y, cy, cz, b.max_z),
            Box3D(b.min_x, cx, cy, b.max_y, cz, b.max_z),
            Box3D(cx, b.max_x, cy, b.max_y, cz, b.max_z),
        ]
        node.children = [self._new_node(box) for box in boxes]

        pts = self._cloud[indices]
        idx_arr = np.asarray(indices)
        unassigned = np.ones(len(indices), dtype=bool)
        children_indices = []
        for box in boxes:
            inside = np.all((pts >= box.lower) & (pts <= box.upper), axis=1) & unassigned
            children_indices.append([int(i) for i in idx_arr[inside]])
            unassigned &= ~inside
        return node.children, children_indices

    def _search(self, pt, k: int) -> list[int] | None:
        if k > self._size:
            logger.error("cannot set k larger than cloud size: %d, %d", k, self._size)
            return None
        if k <= 0 or self.root is None:
            return []

        query = np.asarray(pt, dtype=float).reshape(-1)[:3]
        heap: list[tuple[float, int, int]] = []  # (-dist2, tiebreak, point index)
        counter = itertools.count()
        self._knn(query, self.root, heap, k, counter)
        ordered = sorted(heap, key=lambda item: (-item[0], item[1]))
        return [idx for _, _, idx in ordered]

    def _knn(self, query, node: OctoTreeNode, heap, k: int, counter) -> None:
        if node.is_leaf:
            if node.point_idx != -1:
                diff = self._cloud[node.point_idx] - query
                dis2 = float(diff @ diff)
                if len(heap) < k:
                    heapq.heappush(heap, (-dis2, next(counter), node.point_idx))
                elif dis2 < -heap[0][0]:
                    heapq.heapreplace(heap, (-dis2, next(counter), node.point_idx))
            return

        first = -1
        min_dis = math.inf
        for i, child in enumerate(node.children):
            if child.box.inside(query):
                first = i
                break
            d = child.box.distance(query)
            if d < min_dis:
                first, min_dis = i, d

        self._knn(query, node.children[first], heap, k, counter)
        for i, child in enumerate(node.children):
            if i != first and self._need_expand(query, child, heap, k):
                self._knn(query, child, heap, k, counter)

    def _need_expand(self, query, node: OctoTreeNode, heap, k: int) -> bool:
        if len(heap) < k:
            return True
        d = node.box.distance(query)
        worst = -heap[0][0]
        limit = worst * self.alpha if self.approximate else worst
        return d * d < limit

    def get_closest_point(self, pt, k=5) -> list[int]:
        """Indices of the ``k`` nearest stored points, closest first."""
        found = self._search(pt, k)
        if found is None:
            raise ValueError(f"cannot set k larger than cloud size: {k}, {self._size}")
        return found

    def get_closest_point_mt(self, cloud, k=5) -> list[tuple[int, int]]:
        """``k`` pairs ``(tree_index, query_index)`` per query point, closest first.

        Missing neighbours are filled with ``INVALID_ID``.
        """
        queries = _points(cloud)
        with ThreadPoolExecutor() as pool:
            results = list(pool.map(lambda q: self._search(q, k) or [], queries))

        matches: list[tuple[int, int]] = []
        for qi, found in enumerate(results):
            for i in range(k):
                matches.append((found[i] if i < len(found) else INVALID_ID, qi))
        return matches