from __future__ import annotations

import logging
import math
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..core.config import FlockingConfig
from ..core.spatial_index import Neighbor, SpatialIndex
from ..types.flock import AgentSample, FlockSnapshot, VelocityDelta
from . import steering

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EvaluationStats:
    neighbor_checks: int = 0
    stale_skips: int = 0
    batches: int = 0


def partition(count: int, workers: int) -> List[Tuple[int, int]]:
    """Split ``range(count)`` into contiguous ``(start, stop)`` batches of ``ceil(count / workers)``."""
    if count <= 0:
        return []
    workers = max(1, workers)
    batch_size = max(1, math.ceil(count / workers))
    return [(start, min(start + batch_size, count)) for start in range(0, count, batch_size)]


def select_neighbors(index: SpatialIndex, agent: AgentSample, config: FlockingConfig) -> List[Neighbor]:
    center = (agent.x, agent.y)
    if config.neighbor_mode == "k_nearest":
        # One extra slot for the agent itself, which may sit elsewhere in a lagging index.
        found = index.query_k_nearest(center, config.k_neighbors + 1, max_distance=config.vision_radius)
        return [n for n in found if n.id != agent.id][: config.k_neighbors]
    return index.query_radius(center, config.vision_radius)


def evaluate_batch(
    samples: Sequence[AgentSample],
    snapshot: FlockSnapshot,
    index: SpatialIndex,
    config: FlockingConfig,
    target: Optional[Tuple[float, float]] = None,
) -> Tuple[List[VelocityDelta], int, int]:
    deltas: List[VelocityDelta] = []
    neighbor_checks = 0
    stale_skips = 0
    resolve = snapshot.resolve
    for agent in samples:
        visible: List[AgentSample] = []
        for neighbor in select_neighbors(index, agent, config):
            other = resolve(neighbor.id)
            if other is None:
                stale_skips += 1
                continue
            visible.append(other)
        neighbor_checks += len(visible)
        delta = steering.compute_delta(agent, visible, config, target)
        deltas.append(VelocityDelta(agent.id, delta.x, delta.y))
    return deltas, neighbor_checks, stale_skips


class ParallelScheduler:
    """Fork-join evaluation of steering deltas over a bounded thread pool."""

    def __init__(self, workers: int = 0) -> None:
        self._workers = workers if workers > 0 else (os.cpu_count() or 1)
        self._executor: ThreadPoolExecutor | None = None
        self.last_stats = EvaluationStats()

    @property
    def workers(self) -> int:
        return self._workers

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="steering")
        return self._executor

    def evaluate_all(
        self,
        snapshot: FlockSnapshot,
        index: SpatialIndex,
        config: FlockingConfig,
        target: Optional[Tuple[float, float]] = None,
    ) -> List[VelocityDelta]:
        samples = snapshot.samples
        batches = partition(len(samples), self._workers)
        stats = EvaluationStats(batches=len(batches))
        deltas: List[VelocityDelta] = []
        if len(batches) <= 1:
            results = [evaluate_batch(samples, snapshot, index, config, target)] if batches else []
        else:
            pool = self._pool()
            futures = [
                pool.submit(evaluate_batch, samples[start:stop], snapshot, index, config, target)
                for start, stop in batches
            ]
            # Join barrier: result() blocks and re-raises anything a batch raised.
            results = [future.result() for future in futures]
        for batch_deltas, checks, stale in results:
            deltas.extend(batch_deltas)
            stats.neighbor_checks += checks
            stats.stale_skips += stale
        if stats.stale_skips:
            logger.debug("skipped %d stale neighbour references", stats.stale_skips)
        self.last_stats = stats
        return deltas

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "ParallelScheduler":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
