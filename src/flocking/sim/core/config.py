from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict

import yaml

NEIGHBOR_MODES = ("radius", "k_nearest")
INDEX_BACKENDS = ("kdtree", "grid")
BOUNDARY_MODES = ("steer", "reflect")


class ConfigError(ValueError):
    """Raised when a configuration cannot drive a simulation run."""


@dataclass
class FlockingConfig:
    vision_radius: float = 40.0
    protected_radius: float = 8.0
    fov_enabled: bool = True
    # Full cone width; neighbours beyond half of it from the heading are ignored.
    fov_degrees: float = 240.0
    centering_factor: float = 0.0005
    matching_factor: float = 0.05
    avoid_factor: float = 0.05
    seek_factor: float = 0.005
    neighbor_mode: str = "radius"
    k_neighbors: int = 16

    @property
    def half_fov_radians(self) -> float:
        return math.radians(self.fov_degrees) * 0.5

    @property
    def protected_radius_sq(self) -> float:
        return self.protected_radius * self.protected_radius


@dataclass
class MotionConfig:
    min_speed: float = 2.0
    max_speed: float = 4.0
    initial_speed: float = 100.0
    turn_factor: float = 0.2
    speed_decay: float = 1.0
    boundary_mode: str = "steer"


@dataclass
class SimulationConfig:
    tick_rate: float = 60.0
    agent_count: int = 1000
    window_width: float = 800.0
    window_height: float = 600.0
    bounds_fraction: float = 2.0 / 3.0
    index_backend: str = "kdtree"
    index_cell_size: float = 40.0
    index_rebuild_interval: int = 1
    workers: int = 0
    seed: int = 42
    config_version: str = "v1"
    flocking: FlockingConfig = field(default_factory=FlockingConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)

    @property
    def time_step(self) -> float:
        return 1.0 / self.tick_rate

    @property
    def half_extents(self) -> tuple[float, float]:
        return (
            self.window_width * self.bounds_fraction * 0.5,
            self.window_height * self.bounds_fraction * 0.5,
        )

    def validate(self) -> "SimulationConfig":
        flocking = self.flocking
        motion = self.motion
        _check_types(self, "")
        _check_types(flocking, "flocking")
        _check_types(motion, "motion")
        _require(self.tick_rate > 0.0, "tick_rate", self.tick_rate, "must be positive")
        _require(self.agent_count >= 0, "agent_count", self.agent_count, "must not be negative")
        _require(self.window_width > 0.0, "window_width", self.window_width, "must be positive")
        _require(self.window_height > 0.0, "window_height", self.window_height, "must be positive")
        _require(0.0 < self.bounds_fraction <= 1.0, "bounds_fraction", self.bounds_fraction, "must be in (0, 1]")
        _require(self.index_backend in INDEX_BACKENDS, "index_backend", self.index_backend, f"must be one of {INDEX_BACKENDS}")
        _require(self.index_cell_size > 0.0, "index_cell_size", self.index_cell_size, "must be positive")
        _require(self.index_rebuild_interval >= 1, "index_rebuild_interval", self.index_rebuild_interval, "must be at least 1")
        _require(self.workers >= 0, "workers", self.workers, "must not be negative (0 selects the CPU count)")

        _require(flocking.vision_radius >= 0.0, "flocking.vision_radius", flocking.vision_radius, "must not be negative")
        _require(flocking.protected_radius >= 0.0, "flocking.protected_radius", flocking.protected_radius, "must not be negative")
        _require(
            flocking.protected_radius <= flocking.vision_radius,
            "flocking.protected_radius",
            flocking.protected_radius,
            f"must not exceed vision_radius ({flocking.vision_radius})",
        )
        _require(0.0 < flocking.fov_degrees <= 360.0, "flocking.fov_degrees", flocking.fov_degrees, "must be in (0, 360]")
        _require(flocking.neighbor_mode in NEIGHBOR_MODES, "flocking.neighbor_mode", flocking.neighbor_mode, f"must be one of {NEIGHBOR_MODES}")
        _require(flocking.k_neighbors >= 1, "flocking.k_neighbors", flocking.k_neighbors, "must be at least 1")

        _require(motion.min_speed >= 0.0, "motion.min_speed", motion.min_speed, "must not be negative")
        _require(motion.max_speed > 0.0, "motion.max_speed", motion.max_speed, "must be positive")
        _require(
            motion.min_speed <= motion.max_speed,
            "motion.min_speed",
            motion.min_speed,
            f"must not exceed max_speed ({motion.max_speed})",
        )
        _require(motion.initial_speed >= 0.0, "motion.initial_speed", motion.initial_speed, "must not be negative")
        _require(motion.turn_factor >= 0.0, "motion.turn_factor", motion.turn_factor, "must not be negative")
        _require(0.0 < motion.speed_decay <= 1.0, "motion.speed_decay", motion.speed_decay, "must be in (0, 1]")
        _require(motion.boundary_mode in BOUNDARY_MODES, "motion.boundary_mode", motion.boundary_mode, f"must be one of {BOUNDARY_MODES}")
        return self

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: expected a mapping at the top level, got {type(data).__name__}")
        return load_config(data)


@dataclass
class AppConfig:
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    broadcast_interval: int = 2


def _require(condition: bool, name: str, value: Any, reason: str) -> None:
    if not condition:
        raise ConfigError(f"invalid configuration: {name}={value!r} {reason}")


# YAML scalars accepted per annotated field type; ints are valid floats, bools are not numbers.
_SCALAR_TYPES = {"float": (int, float), "int": (int,), "bool": (bool,), "str": (str,)}


def _check_types(section_config: Any, section: str) -> None:
    for f in fields(section_config):
        expected = _SCALAR_TYPES.get(f.type)
        if expected is None:
            continue
        value = getattr(section_config, f.name)
        ok = isinstance(value, expected) and not (f.type != "bool" and isinstance(value, bool))
        name = f"{section}.{f.name}" if section else f.name
        _require(ok, name, value, f"must be a {f.type}")


def _build(cls: type, raw: Dict[str, Any], section: str) -> Any:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        where = f" in '{section}'" if section else ""
        raise ConfigError(f"unknown configuration keys{where}: {', '.join(unknown)}")
    return cls(**raw)


def load_config(raw: dict) -> SimulationConfig:
    flocking_raw = raw.get("flocking") or {}
    motion_raw = raw.get("motion") or {}
    flocking = _build(FlockingConfig, flocking_raw, "flocking")
    motion = _build(MotionConfig, motion_raw, "motion")
    sim_values = {k: v for k, v in raw.items() if k not in {"flocking", "motion"}}
    config = _build(SimulationConfig, {**sim_values, "flocking": flocking, "motion": motion}, "")
    return config.validate()
