"""K-d tree for exact and approximate k-nearest-neighbour search in 3D clouds."""

from __future__ import annotations

import heapq
import itertools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

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


@dataclass(eq=False)
class KdTreeNode:
    """A tree node: a leaf holds one point index, an inner node a split plane."""

    id: int = -1
    point_idx: int = 0
    axis_index: int = 0
    split_thresh: float = 0.0
    left: "KdTreeNode | None" = None
    right: "KdTreeNode | None" = None

    @property
    def is_leaf(self) -> bool:
        return self.left is None and self.right is None


class KdTree:
    """Binary space partition splitting on the axis of largest variance at the mean.

    Approximate search is on by default: a far subtree is only visited when the
    squared distance to its split plane is below ``alpha`` times the current
    k-th squared distance.
    """

    def __init__(self) -> None:
        self.approximate = True
        self.alpha = 0.1
        self._cloud = np.zeros((0, 3))
        self._root: KdTreeNode | None = None
        self._nodes: dict[int, KdTreeNode] = {}
        self._size = 0
        self._next_id = 0

    def __len__(self) -> int:
        """Number of leaves, i.e. points stored in the tree."""
        return self._size

    @property
    def size(self) -> int:
        return self._size

    def set_enable_ann(self, use_ann=True, alpha=0.1) -> None:
        self.approximate = bool(use_ann)
        self.alpha = float(alpha)

    def clear(self) -> None:
        self._nodes = {}
        self._root = None
        self._size = 0
        self._next_id = 0

    def _new_node(self) -> KdTreeNode:
        node = KdTreeNode(id=self._next_id)
        self._next_id += 1
        return node

    def build_tree(self, cloud) -> bool:
        """Build the tree from ``cloud``; returns False for an empty cloud."""
        points = _points(cloud)
        if len(points) == 0:
            return False

        self._cloud = points
        self.clear()
        self._root = self._new_node()

        # Depth-first, left before right, so node ids follow pre-order.
        stack: list[tuple[KdTreeNode, list[int]]] = [(self._root, list(range(len(points))))]
        while stack:
            node, indices = stack.pop()
            if node.id < 0:
                node.id = self._next_id
                self._next_id += 1
            self._nodes[node.id] = node

            if len(indices) == 1:
                self._size += 1
                node.point_idx = indices[0]
                continue

            split = self._find_split(indices)
            if split is None:
                self._size += 1
                node.point_idx = indices[0]
                continue

            node.axis_index, node.split_thresh, left, right = split
            node.left = KdTreeNode()
            node.right = KdTreeNode()
            stack.append((node.right, right))
            stack.append((node.left, left))
        return True

    def _find_split(self, indices: list[int]):
        subset = self._cloud[indices]
        mean = subset.mean(axis=0)
        var = subset.var(axis=0)
        axis = int(np.argmax(var))
        thresh = float(mean[axis])

        below = subset[:, axis] < thresh
        left = [idx for idx, b in zip(indices, below) if b]
        right = [idx for idx, b in zip(indices, below) if not b]
        if not left or not right:
            return None
        return axis, thresh, left, right

    def _search(self, pt, k: int) -> list[int] | None:
        if k > self._size:
            logger.error("cannot set k larger than cloud size: %d, %d", k, self._size)
            return None
        if k <= 0 or self._root is None:
            return []

        query = np.asarray(pt, dtype=float).reshape(-1)[:3]
        heap: list[tuple[float, int, int]] = []  # (-dist2, tiebreak, point index)
        counter = itertools.count()

        def worst() -> float:
            return -heap[0][0]

        def need_expand(node: KdTreeNode) -> bool:
            if len(heap) < k:
                return True
            d = query[node.axis_index] - node.split_thresh
            limit = worst() * self.alpha if self.approximate else worst()
            return d * d < limit

        stack: list[tuple[KdTreeNode, KdTreeNode | None]] = [(self._root, None)]
        while stack:
            node, far_side = stack.pop()
            if far_side is not None:
                if need_expand(node):
                    stack.append((far_side, None))
                continue

            if node.is_leaf:
                diff = self._cloud[node.point_idx] - query
                dis2 = float(diff @ diff)
                if len(heap) < k:
                    heapq.heappush(heap, (-dis2, next(counter), node.point_idx))
                elif dis2 < worst():
                    heapq.heapreplace(heap, (-dis2, next(counter), node.point_idx))
                continue

            if query[node.axis_index] < node.split_thresh:
                near, far = node.left, node.right
            else:
                near, far = node.right, node.left
            stack.append((node, far))
            stack.append((near, None))

        ordered = sorted(heap, key=lambda item: (-item[0], item[1]))
        return [idx for _, _, idx in ordered]

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

    def print_all(self) -> list[str]:
        """Log a description of every node and return the lines, by node id."""
        lines = []
        for node_id in sorted(self._nodes):
            node = self._nodes[node_id]
            if node.is_leaf:
                line = f"leaf node: {node.id}, idx: {node.point_idx}"
            else:
                line = f"node: {node.id}, axis: {node.axis_index}, th: {node.split_thresh:g}"
            logger.info("%s", line)
            lines.append(line)
        return lines