from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, Dict, List, Optional, Tuple

from pygame.math import Vector2

from .agent import Agent
from .config import SimulationConfig
from .rng import DeterministicRng, halton_2d
from .spatial_index import SpatialIndex, build_index
from ..systems import integrator, metrics as metrics_system
from ..systems.scheduler import ParallelScheduler
from ..types.flock import FlockSnapshot
from ..types.inputs import Rect, TickInput
from ..types.metrics import TickMetrics
from ..types.snapshot import Snapshot, SnapshotMetadata, SnapshotWorld
from ..utils.math2d import _heading_from_xy

logger = logging.getLogger(__name__)


class World:
    """Owns the flock and runs the per-tick pipeline.

    Each ``step`` refreshes the spatial index when it is due, evaluates all
    steering deltas in parallel against a frozen snapshot, then integrates
    the deltas on the calling thread.
    """

    def __init__(self, config: SimulationConfig, scheduler: Optional[ParallelScheduler] = None):
        self._config = config.validate()
        self._rng = DeterministicRng(config.seed)
        self._scheduler = scheduler if scheduler is not None else ParallelScheduler(config.workers)
        self._agents: List[Agent] = []
        self._index: Optional[SpatialIndex] = None
        self._metrics: TickMetrics | None = None
        self._target: Optional[Tuple[float, float]] = None
        half_w, half_h = config.half_extents
        self._bounds = Rect(half_w, half_h)
        self._bootstrap_population()

    @property
    def agents(self) -> List[Agent]:
        return self._agents

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    @property
    def index(self) -> Optional[SpatialIndex]:
        return self._index

    @property
    def scheduler(self) -> ParallelScheduler:
        return self._scheduler

    def reset(self) -> None:
        self._agents.clear()
        self._index = None
        self._metrics = None
        self._target = None
        self._bounds = Rect(*self._config.half_extents)
        self._rng.reset()
        self._bootstrap_population()

    def close(self) -> None:
        self._scheduler.close()

    def step(self, tick: int, frame: Optional[TickInput] = None) -> TickMetrics:
        start = perf_counter()
        config = self._config
        if frame is not None:
            self._target = frame.target
            if frame.bounds is not None:
                if frame.bounds.half_width <= 0.0 or frame.bounds.half_height <= 0.0:
                    raise ValueError(f"frame bounds must have positive extents, got {frame.bounds}")
                self._bounds = frame.bounds

        snapshot = FlockSnapshot.capture(self._agents)
        index, rebuilt = self._refresh_index(tick, snapshot)

        deltas = self._scheduler.evaluate_all(snapshot, index, config.flocking, self._target)
        evaluation = self._scheduler.last_stats
        integration = integrator.apply(self._agents, deltas, self._bounds, config.motion)

        elapsed_ms = (perf_counter() - start) * 1000.0
        metrics = metrics_system.create_metrics(
            tick,
            len(self._agents),
            evaluation,
            integration,
            rebuilt,
            tick - index.built_tick,
            elapsed_ms,
        )
        self._metrics = metrics
        return metrics

    def snapshot(self, tick: int) -> Snapshot:
        config = self._config
        metadata = SnapshotMetadata(
            agent_count=len(self._agents),
            sim_dt=config.time_step,
            tick_rate=config.tick_rate,
            seed=config.seed,
            config_version=config.config_version,
            index_backend=config.index_backend,
            neighbor_mode=config.flocking.neighbor_mode,
        )
        target = None if self._target is None else [self._target[0], self._target[1]]
        return Snapshot(
            tick=tick,
            metrics=self._metrics,
            agents=[self._agent_snapshot(agent) for agent in self._agents],
            world=SnapshotWorld(
                half_width=self._bounds.half_width,
                half_height=self._bounds.half_height,
                target=target,
            ),
            metadata=metadata,
        )

    def _refresh_index(self, tick: int, snapshot: FlockSnapshot) -> Tuple[SpatialIndex, bool]:
        index = self._index
        if index is not None and tick - index.built_tick < self._config.index_rebuild_interval:
            return index, False
        index = build_index(
            self._config.index_backend,
            snapshot.entries(),
            tick=tick,
            cell_size=self._config.index_cell_size,
        )
        self._index = index
        return index, True

    def _bootstrap_population(self) -> None:
        config = self._config
        width = config.window_width
        height = config.window_height
        speed = config.motion.initial_speed
        for agent_id, (u, v) in enumerate(halton_2d(config.agent_count)):
            position = Vector2(u * width - width * 0.5, v * height - height * 0.5)
            velocity = Vector2(self._rng.next_range(-1.0, 1.0), self._rng.next_range(-1.0, 1.0)) * speed
            self._agents.append(
                Agent(
                    id=agent_id,
                    position=position,
                    velocity=velocity,
                    heading=_heading_from_xy(velocity.x, velocity.y),
                )
            )
        logger.info("spawned %d agents in a %.0fx%.0f window", len(self._agents), width, height)

    @staticmethod
    def _agent_snapshot(agent: Agent) -> Dict[str, Any]:
        return {
            "id": agent.id,
            "x": agent.position.x,
            "y": agent.position.y,
            "vx": agent.velocity.x,
            "vy": agent.velocity.y,
            "speed": agent.velocity.length(),
            "heading": agent.orientation,
        }
