from __future__ import annotations

import math
import random

import pytest

from flocking.sim.core.spatial_index import GridIndex, KDTreeIndex, build_index

BACKENDS = ["kdtree", "grid"]


def _random_entries(seed: int, count: int, extent: float = 200.0) -> list[tuple[int, float, float]]:
    rng = random.Random(seed)
    return [(i, rng.uniform(-extent, extent), rng.uniform(-extent, extent)) for i in range(count)]


def _brute_radius(entries, center, radius):
    cx, cy = center
    return sorted(i for i, x, y in entries if math.hypot(x - cx, y - cy) <= radius)


def _brute_k_nearest(entries, center, k, max_distance=math.inf):
    cx, cy = center
    ranked = sorted(
        (math.hypot(x - cx, y - cy), i) for i, x, y in entries if math.hypot(x - cx, y - cy) <= max_distance
    )
    return [i for _, i in ranked[:k]]


@pytest.mark.parametrize("backend", BACKENDS)
@pytest.mark.parametrize("seed", range(8))
def test_query_radius_matches_bruteforce(backend, seed):
    entries = _random_entries(seed, 150)
    index = build_index(backend, entries, cell_size=25.0)
    rng = random.Random(1000 + seed)
    for _ in range(20):
        center = (rng.uniform(-220.0, 220.0), rng.uniform(-220.0, 220.0))
        radius = rng.uniform(0.0, 90.0)
        found = index.query_radius(center, radius)
        assert sorted(n.id for n in found) == _brute_radius(entries, center, radius)


@pytest.mark.parametrize("backend", BACKENDS)
def test_query_radius_reports_positions_and_distances(backend):
    entries = [(0, 0.0, 0.0), (1, 3.0, 4.0), (2, 30.0, 0.0)]
    index = build_index(backend, entries, cell_size=10.0)

    found = {n.id: n for n in index.query_radius((0.0, 0.0), 5.0)}

    assert set(found) == {0, 1}
    assert found[1].x == pytest.approx(3.0)
    assert found[1].y == pytest.approx(4.0)
    assert found[1].distance == pytest.approx(5.0)


@pytest.mark.parametrize("backend", BACKENDS)
@pytest.mark.parametrize("seed", range(5))
def test_query_k_nearest_is_ordered_prefix_of_bruteforce(backend, seed):
    entries = _random_entries(seed, 120)
    index = build_index(backend, entries, cell_size=20.0)
    rng = random.Random(2000 + seed)
    for _ in range(15):
        center = (rng.uniform(-200.0, 200.0), rng.uniform(-200.0, 200.0))
        k = rng.randint(1, 12)
        found = index.query_k_nearest(center, k)
        assert [n.id for n in found] == _brute_k_nearest(entries, center, k)
        distances = [n.distance for n in found]
        assert distances == sorted(distances)


@pytest.mark.parametrize("backend", BACKENDS)
def test_query_k_nearest_respects_max_distance(backend):
    entries = _random_entries(3, 80)
    index = build_index(backend, entries, cell_size=30.0)
    center = (10.0, -5.0)

    found = index.query_k_nearest(center, 50, max_distance=40.0)

    assert [n.id for n in found] == _brute_k_nearest(entries, center, 50, max_distance=40.0)
    assert all(n.distance <= 40.0 for n in found)


@pytest.mark.parametrize("backend", BACKENDS)
def test_k_larger_than_population_returns_everything(backend):
    entries = _random_entries(4, 5)
    index = build_index(backend, entries, cell_size=15.0)

    found = index.query_k_nearest((0.0, 0.0), 10)

    assert sorted(n.id for n in found) == [0, 1, 2, 3, 4]


@pytest.mark.parametrize("backend", BACKENDS)
def test_empty_index_returns_no_neighbors(backend):
    index = build_index(backend, [], tick=3)

    assert len(index) == 0
    assert index.built_tick == 3
    assert index.query_radius((0.0, 0.0), 100.0) == []
    assert index.query_k_nearest((0.0, 0.0), 4) == []


def test_single_entry_kdtree_k_nearest():
    index = KDTreeIndex.build([(7, 1.0, 1.0)])

    found = index.query_k_nearest((0.0, 0.0), 1)

    assert [n.id for n in found] == [7]
    assert found[0].distance == pytest.approx(math.sqrt(2.0))


def test_grid_handles_negative_coordinates_on_cell_edges():
    index = GridIndex.build([(0, -10.0, -10.0), (1, -0.0001, 0.0), (2, 10.0, 10.0)], cell_size=10.0)

    found = index.query_radius((-5.0, -5.0), 7.5)

    assert sorted(n.id for n in found) == [0, 1]


def test_unknown_backend_is_rejected():
    with pytest.raises(ValueError):
        build_index("octree", [])
