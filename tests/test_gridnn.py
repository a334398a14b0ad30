import numpy as np
import pytest

from sadnav.bfnn import INVALID_ID, bfnn_cloud
from sadnav.gridnn import GridNN, NearbyType


def _grid(ref, nearby, dim=2):
    grid = GridNN(0.1, nearby, dim=dim)
    grid.set_point_cloud(ref)
    return grid


def test_center_picks_nearest_in_cell():
    grid = _grid([[0, 0, 0], [5, 5, 0], [0.3, 0.1, 0]], NearbyType.CENTER)
    pt, idx = grid.get_closest_point([0.2, 0.1, 0.0])
    assert idx == 2
    np.testing.assert_allclose(pt, [0.3, 0.1, 0.0])


def test_no_match_far_away():
    grid = _grid([[0, 0, 0]], NearbyType.NEARBY4)
    assert grid.get_closest_point([10.0, 10.0, 0.0]) is None


def test_nearby4_reaches_side_cell():
    ref = [[1.0, 0.0, 0.0]]
    assert _grid(ref, NearbyType.CENTER).get_closest_point([0.4, 0.0, 0.0]) is None
    assert _grid(ref, NearbyType.NEARBY4).get_closest_point([0.4, 0.0, 0.0])[1] == 0


def test_nearby8_reaches_corner_cell():
    ref = [[1.0, 1.0, 0.0]]
    assert _grid(ref, NearbyType.NEARBY4).get_closest_point([0.2, 0.2, 0.0]) is None
    assert _grid(ref, NearbyType.NEARBY8).get_closest_point([0.2, 0.2, 0.0])[1] == 0


def test_3d_neighbours():
    ref = [[0.0, 0.0, 2.0]]
    assert _grid(ref, NearbyType.CENTER, 3).get_closest_point([0, 0, 1.2]) is None
    assert _grid(ref, NearbyType.NEARBY6, 3).get_closest_point([0, 0, 1.2])[1] == 0
    # in 2D the height is ignored
    assert _grid(ref, NearbyType.CENTER, 2).get_closest_point([0, 0, 1.2])[1] == 0


def test_nearby14_reaches_corner_in_3d():
    ref = [[1.0, 1.0, 1.0]]
    assert _grid(ref, NearbyType.NEARBY6, 3).get_closest_point([0, 0, 0]) is None
    assert _grid(ref, NearbyType.NEARBY14, 3).get_closest_point([0, 0, 0])[1] == 0


def test_rounding_half_away_from_zero():
    assert _grid([[1.0, 0.0, 0.0]], NearbyType.CENTER).get_closest_point([0.5, 0, 0])[1] == 0
    assert _grid([[-1.0, 0.0, 0.0]], NearbyType.CENTER).get_closest_point([-0.5, 0, 0])[1] == 0


def test_unsupported_nearby_types_fall_back():
    assert GridNN(0.1, NearbyType.NEARBY6, dim=2).nearby_type is NearbyType.NEARBY4
    assert GridNN(0.1, NearbyType.NEARBY8, dim=3).nearby_type is NearbyType.NEARBY6
    assert len(GridNN(0.1, NearbyType.NEARBY14, dim=3).nearby_grids) == 15


def test_bad_dim_raises():
    with pytest.raises(ValueError):
        GridNN(0.1, NearbyType.CENTER, dim=4)


def test_cloud_matches_never_beat_brute_force():
    rng = np.random.default_rng(7)
    first = rng.uniform(-3.0, 3.0, size=(200, 3))
    second = rng.uniform(-3.0, 3.0, size=(80, 3))
    truth = dict((q, r) for r, q in bfnn_cloud(first, second))
    for nearby, dim in [
        (NearbyType.CENTER, 2),
        (NearbyType.NEARBY4, 2),
        (NearbyType.NEARBY8, 2),
        (NearbyType.NEARBY14, 3),
    ]:
        grid = _grid(first, nearby, dim)
        matches = grid.get_closest_point_for_cloud(first, second)
        assert matches
        for r, q in matches:
            found = np.linalg.norm(first[r] - second[q])
            best = np.linalg.norm(first[truth[q]] - second[q])
            assert found >= best - 1e-12


def test_mt_agrees_with_single_thread():
    rng = np.random.default_rng(11)
    first = rng.uniform(-4.0, 4.0, size=(60, 3))
    second = rng.uniform(-6.0, 6.0, size=(40, 3))
    grid = _grid(first, NearbyType.NEARBY4)
    single = grid.get_closest_point_for_cloud(first, second)
    multi = grid.get_closest_point_for_cloud_mt(first, second)
    assert len(multi) == 40
    assert [m for m in multi if m[0] != INVALID_ID] == single
    assert all(m == (INVALID_ID, INVALID_ID) for m in multi if m[0] == INVALID_ID)