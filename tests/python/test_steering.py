from __future__ import annotations

import math

import pytest

from flocking.sim.core.config import FlockingConfig
from flocking.sim.core.spatial_index import KDTreeIndex
from flocking.sim.systems import steering
from flocking.sim.types.flock import AgentSample


def _sample(agent_id, x, y, vx=1.0, vy=0.0, heading=None):
    return AgentSample(agent_id, x, y, vx, vy, heading)


def test_no_neighbors_yields_zero_delta():
    agent = _sample(0, 0.0, 0.0)

    delta = steering.compute_delta(agent, [agent], FlockingConfig())

    assert delta.x == 0.0
    assert delta.y == 0.0


def test_no_neighbors_yields_only_goal_seek_term():
    config = FlockingConfig(seek_factor=0.01)
    agent = _sample(0, 10.0, -20.0)

    delta = steering.compute_delta(agent, [], config, target=(110.0, 80.0))

    assert delta.x == pytest.approx(1.0)
    assert delta.y == pytest.approx(1.0)


def test_scenario_close_neighbor_pushes_away_and_far_agent_unseen():
    config = FlockingConfig(vision_radius=40.0, protected_radius=8.0)
    agents = [
        _sample(0, 0.0, 0.0, vx=1.0, vy=0.0),
        _sample(1, 5.0, 0.0, vx=1.0, vy=0.0),
        _sample(2, 100.0, 100.0, vx=-1.0, vy=0.0),
    ]
    index = KDTreeIndex.build((a.id, a.x, a.y) for a in agents)
    visible_ids = [n.id for n in index.query_radius((0.0, 0.0), config.vision_radius)]
    assert 2 not in visible_ids
    visible = [agents[i] for i in visible_ids]

    summary = steering.classify_neighbors(agents[0], visible, config)
    delta = steering.compute_delta(agents[0], visible, config)

    assert summary.close == 1
    assert summary.far == 0
    assert summary.away_x == pytest.approx(-5.0)
    assert delta.x == pytest.approx(-5.0 * config.avoid_factor)
    assert delta.x < 0.0
    assert delta.y == pytest.approx(0.0)


def test_separation_contributions_are_opposite_along_connecting_line():
    config = FlockingConfig(protected_radius=8.0, fov_enabled=False)
    left = _sample(0, 0.0, 0.0, vx=0.0, vy=1.0)
    right = _sample(1, 3.0, 4.0, vx=0.0, vy=1.0)

    delta_left = steering.compute_delta(left, [left, right], config)
    delta_right = steering.compute_delta(right, [left, right], config)

    assert delta_left.x < 0.0 and delta_left.y < 0.0
    assert delta_right.x > 0.0 and delta_right.y > 0.0
    assert delta_left.x == pytest.approx(-delta_right.x)
    assert delta_left.y == pytest.approx(-delta_right.y)
    # Parallel to the line between the two agents.
    assert delta_left.x * 4.0 - delta_left.y * 3.0 == pytest.approx(0.0)


def test_neighbor_directly_behind_is_ignored_with_fov():
    config = FlockingConfig(fov_enabled=True, fov_degrees=240.0)
    agent = _sample(0, 0.0, 0.0, vx=2.0, vy=0.0)
    behind = _sample(1, -20.0, 0.0, vx=0.0, vy=3.0)

    summary = steering.classify_neighbors(agent, [behind], config)
    delta = steering.compute_delta(agent, [behind], config)

    assert summary.outside_fov == 1
    assert summary.far == 0 and summary.close == 0
    assert delta.x == 0.0 and delta.y == 0.0


def test_neighbor_behind_counts_when_fov_disabled():
    config = FlockingConfig(fov_enabled=False)
    agent = _sample(0, 0.0, 0.0, vx=2.0, vy=0.0)
    behind = _sample(1, -20.0, 0.0, vx=0.0, vy=3.0)

    summary = steering.classify_neighbors(agent, [behind], config)
    delta = steering.compute_delta(agent, [behind], config)

    assert summary.far == 1
    assert delta.x == pytest.approx(-20.0 * config.centering_factor)
    assert delta.y == pytest.approx(3.0 * config.matching_factor)


def test_fov_edge_uses_half_angle():
    config = FlockingConfig(fov_degrees=180.0)
    agent = _sample(0, 0.0, 0.0, vx=1.0, vy=0.0)
    ahead_side = _sample(1, 10.0 * math.cos(math.radians(80)), 10.0 * math.sin(math.radians(80)))
    behind_side = _sample(2, 10.0 * math.cos(math.radians(100)), 10.0 * math.sin(math.radians(100)))

    summary = steering.classify_neighbors(agent, [ahead_side, behind_side], config)

    assert summary.far == 1
    assert summary.outside_fov == 1


def test_stationary_agent_uses_stored_heading_for_fov():
    config = FlockingConfig(fov_degrees=90.0)
    agent = _sample(0, 0.0, 0.0, vx=0.0, vy=0.0, heading=math.pi / 2)
    above = _sample(1, 0.0, 20.0)
    right = _sample(2, 20.0, 0.0)

    summary = steering.classify_neighbors(agent, [above, right], config)

    assert summary.far == 1
    assert summary.outside_fov == 1


def test_agent_without_heading_sees_all_directions():
    config = FlockingConfig(fov_degrees=30.0)
    agent = _sample(0, 0.0, 0.0, vx=0.0, vy=0.0, heading=None)
    others = [_sample(1, -20.0, 0.0), _sample(2, 0.0, -20.0), _sample(3, 20.0, 0.0)]

    summary = steering.classify_neighbors(agent, others, config)

    assert summary.far == 3


def test_cohesion_and_alignment_average_far_neighbors():
    config = FlockingConfig(fov_enabled=False, centering_factor=0.5, matching_factor=0.25)
    agent = _sample(0, 0.0, 0.0, vx=0.0, vy=0.0)
    neighbors = [_sample(1, 20.0, 0.0, vx=2.0, vy=0.0), _sample(2, 0.0, 20.0, vx=0.0, vy=4.0)]

    delta = steering.compute_delta(agent, neighbors, config)

    assert delta.x == pytest.approx(10.0 * 0.5 + 1.0 * 0.25)
    assert delta.y == pytest.approx(10.0 * 0.5 + 2.0 * 0.25)


def test_self_match_is_skipped_even_when_coincident():
    config = FlockingConfig()
    agent = _sample(5, 1.0, 1.0)
    twin = _sample(5, 1.0, 1.0)

    summary = steering.classify_neighbors(agent, [twin], config)

    assert summary.close == 0 and summary.far == 0


def test_compute_delta_does_not_mutate_inputs():
    config = FlockingConfig(fov_enabled=False)
    agent = _sample(0, 0.0, 0.0)
    neighbors = [_sample(1, 3.0, 0.0), _sample(2, 15.0, 0.0)]
    before = list(neighbors)

    steering.compute_delta(agent, neighbors, config, target=(5.0, 5.0))

    assert neighbors == before
    assert agent == _sample(0, 0.0, 0.0)
