from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TickMetrics:
    tick: int
    population: int
    neighbor_checks: int
    stale_skips: int
    average_speed: float
    min_speed: float
    max_speed: float
    index_rebuilt: bool
    index_age: int
    batches: int
    tick_duration_ms: float = 0.0
