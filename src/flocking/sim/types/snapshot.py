from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .metrics import TickMetrics


@dataclass(slots=True)
class Snapshot:
    tick: int
    metrics: Optional[TickMetrics]
    agents: List[Dict[str, Any]]
    world: "SnapshotWorld"
    metadata: "SnapshotMetadata"


@dataclass(slots=True)
class SnapshotWorld:
    half_width: float
    half_height: float
    target: Optional[List[float]] = None


@dataclass(slots=True)
class SnapshotMetadata:
    agent_count: int
    sim_dt: float
    tick_rate: float
    seed: int
    config_version: str
    index_backend: str
    neighbor_mode: str
