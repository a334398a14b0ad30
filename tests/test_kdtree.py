import numpy as np
import pytest

from sadnav.bfnn import INVALID_ID, bfnn_cloud_mt_k, bfnn_point_k
from sadnav.kdtree import KdTree, KdTreeNode


def _square_cloud():
    return [[0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 1, 0]]


def _random_clouds(seed=7, n_ref=300, n_query=60):
    rng = np.random.default_rng(seed)
    return rng.uniform(-5, 5, (n_ref, 3)), rng.uniform(-5, 5, (n_query, 3))


def _precision_recall(truth, esti):
    truth_set = set(truth)
    esti_set = set(esti)
    effective = [d for d in esti if d[0] != INVALID_ID and d[1] != INVALID_ID]
    fp = sum(1 for d in effective if d not in truth_set)
    fn = sum(1 for d in truth if d not in esti_set)
    return 1.0 - fp / len(effective), 1.0 - fn / len(truth)


def test_basics_four_points_builds_seven_nodes():
    tree = KdTree()
    assert tree.build_tree(_square_cloud()) is True
    assert len(tree) == 4
    lines = tree.print_all()
    assert len(lines) == 7
    assert lines[0] == "node: 0, axis: 0, th: 0.5"
    assert lines[1] == "node: 1, axis: 1, th: 0.5"
    assert lines[2] == "leaf node: 2, idx: 0"
    assert lines[3] == "leaf node: 3, idx: 2"
    assert sum(line.startswith("leaf") for line in lines) == 4


def test_empty_cloud_is_rejected():
    tree = KdTree()
    assert tree.build_tree(np.zeros((0, 3))) is False
    assert len(tree) == 0


def test_k_larger_than_size_raises():
    tree = KdTree()
    tree.build_tree(_square_cloud())
    with pytest.raises(ValueError):
        tree.get_closest_point([0, 0, 0], k=5)


def test_closest_points_ordered_exact():
    tree = KdTree()
    tree.build_tree(_square_cloud())
    tree.set_enable_ann(False)
    assert tree.get_closest_point([0.1, 0.2, 0.0], k=1) == [0]
    result = tree.get_closest_point([0.9, 0.05, 0.0], k=4)
    assert result[0] == 1
    assert result[-1] == 2
    assert sorted(result) == [0, 1, 2, 3]


def test_exact_knn_matches_brute_force_per_point():
    ref, query = _random_clouds()
    tree = KdTree()
    tree.build_tree(ref)
    tree.set_enable_ann(False)
    for q in query:
        assert tree.get_closest_point(q, k=5) == bfnn_point_k(ref, q, 5)


def test_mt_with_alpha_one_has_full_precision_and_recall():
    ref, query = _random_clouds(seed=11)
    tree = KdTree()
    tree.build_tree(ref)
    tree.set_enable_ann(True, 1.0)
    matches = tree.get_closest_point_mt(query, 5)
    truth = bfnn_cloud_mt_k(ref, query)
    assert len(matches) == len(query) * 5
    precision, recall = _precision_recall(truth, matches)
    assert precision == pytest.approx(1.0)
    assert recall == pytest.approx(1.0)


def test_approximate_search_returns_k_sorted_valid_indices():
    ref, query = _random_clouds(seed=3)
    tree = KdTree()
    tree.build_tree(ref)
    tree.set_enable_ann(True, 0.1)
    for q in query[:10]:
        found = tree.get_closest_point(q, k=5)
        assert len(found) == 5
        assert len(set(found)) == 5
        dists = [float(np.sum((ref[i] - q) ** 2)) for i in found]
        assert dists == sorted(dists)


def test_duplicate_points_collapse_to_one_leaf():
    tree = KdTree()
    tree.build_tree([[1, 2, 3]] * 3)
    assert len(tree) == 1
    assert tree.get_closest_point([0, 0, 0], k=1) == [0]


def test_mt_with_too_large_k_fills_invalid():
    tree = KdTree()
    tree.build_tree(_square_cloud())
    matches = tree.get_closest_point_mt([[0, 0, 0], [1, 1, 0]], 6)
    assert len(matches) == 12
    assert all(m[0] == INVALID_ID for m in matches)
    assert [m[1] for m in matches] == [0] * 6 + [1] * 6


def test_clear_empties_the_tree():
    tree = KdTree()
    tree.build_tree(_square_cloud())
    tree.clear()
    assert len(tree) == 0
    assert tree.print_all() == []
    with pytest.raises(ValueError):
        tree.get_closest_point([0, 0, 0], k=1)


def test_rebuild_replaces_previous_cloud():
    tree = KdTree()
    tree.build_tree(_square_cloud())
    tree.build_tree([[10, 10, 10], [20, 20, 20]])
    tree.set_enable_ann(False)
    assert len(tree) == 2
    assert tree.get_closest_point([19, 19, 19], k=2) == [1, 0]


def test_node_leaf_property():
    leaf = KdTreeNode(id=3, point_idx=2)
    inner = KdTreeNode(id=0, left=leaf)
    assert leaf.is_leaf is True
    assert inner.is_leaf is False