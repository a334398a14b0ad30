import numpy as np
import pytest

from sadnav.bfnn import (
    bfnn_cloud,
    bfnn_cloud_mt,
    bfnn_cloud_mt_k,
    bfnn_point,
    bfnn_point_k,
)

SQUARE = [[0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 1, 0]]


def _random_cloud(n, seed):
    return np.random.default_rng(seed).uniform(-5.0, 5.0, size=(n, 3))


def test_bfnn_point_on_square():
    assert bfnn_point(SQUARE, [0.9, 0.1, 0.0]) == 1
    assert bfnn_point(SQUARE, [0.2, 0.8, 0.3]) == 2
    assert bfnn_point(SQUARE, [2.0, 2.0, 0.0]) == 3


def test_bfnn_point_tie_returns_first():
    assert bfnn_point(SQUARE, [0.5, 0.5, 0.0]) == 0


def test_bfnn_point_finds_exact_members():
    cloud = _random_cloud(50, 1)
    for i in (0, 17, 49):
        assert bfnn_point(cloud, cloud[i]) == i


def test_bfnn_point_ignores_extra_columns():
    cloud = [[0, 0, 0, 9.0], [3, 0, 0, 1.0]]
    assert bfnn_point(cloud, [2.5, 0, 0]) == 1


def test_bfnn_point_empty_cloud_raises():
    with pytest.raises(ValueError):
        bfnn_point([], [0, 0, 0])


def test_bfnn_point_k_order():
    assert bfnn_point_k(SQUARE, [0.9, 0.1, 0.0], 4) == [1, 0, 3, 2]
    assert bfnn_point_k(SQUARE, [0.9, 0.1, 0.0], 2) == [1, 0]


def test_bfnn_point_k_first_matches_nearest():
    cloud = _random_cloud(40, 2)
    query = np.array([0.3, -1.2, 2.0])
    result = bfnn_point_k(cloud, query)
    assert len(result) == 5
    assert result[0] == bfnn_point(cloud, query)
    dists = [np.linalg.norm(cloud[i] - query) for i in result]
    assert dists == sorted(dists)


def test_bfnn_point_k_too_large_raises():
    with pytest.raises(ValueError):
        bfnn_point_k(SQUARE, [0, 0, 0], 5)


def test_bfnn_cloud_pairs():
    matches = bfnn_cloud(SQUARE, [[0.9, 0.9, 0.0], [0.1, 0.0, 0.0]])
    assert matches == [(3, 0), (0, 1)]


def test_bfnn_cloud_mt_equals_single_thread():
    first = _random_cloud(60, 3)
    second = _random_cloud(30, 4)
    assert bfnn_cloud_mt(first, second) == bfnn_cloud(first, second)


def test_bfnn_cloud_mt_k_layout():
    first = _random_cloud(20, 5)
    second = _random_cloud(6, 6)
    matches = bfnn_cloud_mt_k(first, second, 3)
    assert len(matches) == 18
    for i in range(6):
        block = matches[3 * i : 3 * i + 3]
        assert [q for _, q in block] == [i, i, i]
        assert [r for r, _ in block] == bfnn_point_k(first, second[i], 3)