from __future__ import annotations

from ..types.metrics import TickMetrics
from .integrator import IntegrationStats
from .scheduler import EvaluationStats


def create_metrics(
    tick: int,
    population: int,
    evaluation: EvaluationStats,
    integration: IntegrationStats,
    index_rebuilt: bool,
    index_age: int,
    duration_ms: float,
) -> TickMetrics:
    return TickMetrics(
        tick=tick,
        population=population,
        neighbor_checks=evaluation.neighbor_checks,
        stale_skips=evaluation.stale_skips,
        average_speed=integration.average_speed(population),
        min_speed=integration.min_speed,
        max_speed=integration.max_speed,
        index_rebuilt=index_rebuilt,
        index_age=index_age,
        batches=evaluation.batches,
        tick_duration_ms=duration_ms,
    )
