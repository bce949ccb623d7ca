from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List

from ..core.agent import Agent
from ..core.config import MotionConfig
from ..types.flock import VelocityDelta
from ..types.inputs import Rect
from ..utils.math2d import _clamp_speed_xy, _heading_from_xy

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IntegrationStats:
    applied: int = 0
    unknown: int = 0
    duplicates: int = 0
    missing: int = 0
    speed_sum: float = 0.0
    min_speed: float = 0.0
    max_speed: float = 0.0

    def average_speed(self, population: int) -> float:
        return 0.0 if population == 0 else self.speed_sum / population


def collect_deltas(agents: List[Agent], deltas: Iterable[VelocityDelta], stats: IntegrationStats) -> Dict[int, VelocityDelta]:
    live_ids = {agent.id for agent in agents}
    by_id: Dict[int, VelocityDelta] = {}
    for delta in deltas:
        if delta.agent_id not in live_ids:
            stats.unknown += 1
            continue
        if delta.agent_id in by_id:
            stats.duplicates += 1
            continue
        by_id[delta.agent_id] = delta
    if stats.duplicates:
        logger.warning("ignored %d duplicate velocity deltas", stats.duplicates)
    if stats.unknown:
        logger.debug("skipped %d deltas for unknown agents", stats.unknown)
    return by_id


def steer_inside(x: float, y: float, vx: float, vy: float, bounds: Rect, turn_factor: float) -> tuple[float, float]:
    if x < -bounds.half_width:
        vx += turn_factor
    if x > bounds.half_width:
        vx -= turn_factor
    if y < -bounds.half_height:
        vy += turn_factor
    if y > bounds.half_height:
        vy -= turn_factor
    return vx, vy


def reflect(x: float, y: float, vx: float, vy: float, bounds: Rect) -> tuple[float, float, float, float]:
    half_w = bounds.half_width
    half_h = bounds.half_height
    while True:
        crossed = False
        if x < -half_w:
            x = -2 * half_w - x
            vx = -vx
            crossed = True
        if x > half_w:
            x = 2 * half_w - x
            vx = -vx
            crossed = True
        if y < -half_h:
            y = -2 * half_h - y
            vy = -vy
            crossed = True
        if y > half_h:
            y = 2 * half_h - y
            vy = -vy
            crossed = True
        if not crossed:
            break
    return x, y, vx, vy


def apply(agents: List[Agent], deltas: Iterable[VelocityDelta], bounds: Rect, config: MotionConfig) -> IntegrationStats:
    """Apply one tick of deltas to ``agents`` in place.

    Agents without a delta are integrated with a zero delta so the speed
    bounds hold for the whole flock after every tick.
    """
    stats = IntegrationStats()
    by_id = collect_deltas(agents, deltas, stats)
    steer = config.boundary_mode == "steer"
    min_speed = config.min_speed
    max_speed = config.max_speed
    decay = config.speed_decay
    slowest = math.inf
    fastest = 0.0

    for agent in agents:
        vel_x = agent.velocity.x
        vel_y = agent.velocity.y
        delta = by_id.get(agent.id)
        if delta is None:
            stats.missing += 1
        else:
            vel_x += delta.dx
            vel_y += delta.dy
            stats.applied += 1

        pos_x = agent.position.x
        pos_y = agent.position.y
        if steer:
            vel_x, vel_y = steer_inside(pos_x, pos_y, vel_x, vel_y, bounds, config.turn_factor)

        if decay != 1.0:
            vel_x *= decay
            vel_y *= decay
        vel_x, vel_y = _clamp_speed_xy(vel_x, vel_y, min_speed, max_speed, agent.heading)

        heading = _heading_from_xy(vel_x, vel_y)
        if heading is not None:
            agent.heading = heading

        pos_x += vel_x
        pos_y += vel_y
        if not steer:
            pos_x, pos_y, vel_x, vel_y = reflect(pos_x, pos_y, vel_x, vel_y, bounds)
            reflected = _heading_from_xy(vel_x, vel_y)
            if reflected is not None:
                agent.heading = reflected
        agent.position.update(pos_x, pos_y)
        agent.velocity.update(vel_x, vel_y)

        speed = math.hypot(vel_x, vel_y)
        stats.speed_sum += speed
        slowest = min(slowest, speed)
        fastest = max(fastest, speed)

    if agents:
        stats.min_speed = slowest
        stats.max_speed = fastest
    return stats
