from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from pygame.math import Vector2

from ..core.config import FlockingConfig
from ..types.flock import AgentSample
from ..utils.math2d import _angle_between_xy, _heading_from_xy


@dataclass(slots=True)
class NeighborSummary:
    """Accumulated neighbour scan for one agent, before any averaging."""

    away_x: float = 0.0
    away_y: float = 0.0
    close: int = 0
    offset_x: float = 0.0
    offset_y: float = 0.0
    velocity_x: float = 0.0
    velocity_y: float = 0.0
    far: int = 0
    outside_fov: int = 0


def heading_of(agent: AgentSample) -> Optional[float]:
    heading = _heading_from_xy(agent.vx, agent.vy)
    if heading is None:
        return agent.heading
    return heading


def in_field_of_view(heading: Optional[float], offset_x: float, offset_y: float, half_fov: float) -> bool:
    if heading is None:
        return True
    angle = _angle_between_xy(math.cos(heading), math.sin(heading), offset_x, offset_y)
    if angle is None:
        return True
    return angle <= half_fov


def classify_neighbors(
    agent: AgentSample, neighbors: Sequence[AgentSample], config: FlockingConfig
) -> NeighborSummary:
    summary = NeighborSummary()
    protected_sq = config.protected_radius_sq
    fov_enabled = config.fov_enabled and config.fov_degrees < 360.0
    half_fov = config.half_fov_radians
    heading = heading_of(agent) if fov_enabled else None
    pos_x = agent.x
    pos_y = agent.y

    for other in neighbors:
        if other.id == agent.id:
            continue
        offset_x = other.x - pos_x
        offset_y = other.y - pos_y
        if fov_enabled and not in_field_of_view(heading, offset_x, offset_y, half_fov):
            summary.outside_fov += 1
            continue
        dist_sq = offset_x * offset_x + offset_y * offset_y
        if dist_sq < protected_sq:
            summary.away_x -= offset_x
            summary.away_y -= offset_y
            summary.close += 1
        else:
            summary.offset_x += offset_x
            summary.offset_y += offset_y
            summary.velocity_x += other.vx
            summary.velocity_y += other.vy
            summary.far += 1
    return summary


def compute_delta(
    agent: AgentSample,
    neighbors: Sequence[AgentSample],
    config: FlockingConfig,
    target: Optional[Tuple[float, float]] = None,
) -> Vector2:
    summary = classify_neighbors(agent, neighbors, config)
    delta_x = 0.0
    delta_y = 0.0

    if summary.far > 0:
        inv = 1.0 / summary.far
        delta_x += summary.offset_x * inv * config.centering_factor
        delta_y += summary.offset_y * inv * config.centering_factor
        delta_x += summary.velocity_x * inv * config.matching_factor
        delta_y += summary.velocity_y * inv * config.matching_factor

    if summary.close > 0:
        inv = 1.0 / summary.close
        delta_x += summary.away_x * inv * config.avoid_factor
        delta_y += summary.away_y * inv * config.avoid_factor

    if target is not None:
        delta_x += (target[0] - agent.x) * config.seek_factor
        delta_y += (target[1] - agent.y) * config.seek_factor

    return Vector2(delta_x, delta_y)
