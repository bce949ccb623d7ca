from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from pathlib import Path
from typing import Optional, Sequence

from ..sim.core.config import SimulationConfig
from ..sim.core.world import World
from ..sim.types.inputs import Rect, TickInput
from ..sim.types.metrics import TickMetrics

logger = logging.getLogger(__name__)


_BASIC_HEADER = [
    "tick",
    "population",
    "neighbor_checks",
    "avg_speed",
    "tick_ms",
]

_DETAILED_HEADER = [
    "tick",
    "population",
    "neighbor_checks",
    "stale_skips",
    "avg_speed",
    "min_speed",
    "max_speed",
    "index_rebuilt",
    "index_age",
    "batches",
    "tick_ms",
    "neighbor_checks_per_agent",
    "tick_ms_per_agent",
    "centroid_x",
    "centroid_y",
    "spread",
    "outside_bounds",
]


def _format_basic_row(metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        metrics.population,
        metrics.neighbor_checks,
        f"{metrics.average_speed:.4f}",
        f"{tick_ms:.3f}",
    ]


def _format_detailed_row(world: World, metrics: TickMetrics, tick_ms: float) -> list[object]:
    population = metrics.population
    if population <= 0:
        neighbor_checks_per_agent = 0.0
        tick_ms_per_agent = 0.0
        centroid_x = 0.0
        centroid_y = 0.0
        spread = 0.0
        outside = 0
    else:
        neighbor_checks_per_agent = metrics.neighbor_checks / population
        tick_ms_per_agent = tick_ms / population
        region = Rect(*world.config.half_extents)
        sum_x = 0.0
        sum_y = 0.0
        outside = 0
        for agent in world.agents:
            x = agent.position.x
            y = agent.position.y
            sum_x += x
            sum_y += y
            if not region.contains(x, y):
                outside += 1
        centroid_x = sum_x / population
        centroid_y = sum_y / population
        spread_sq = 0.0
        for agent in world.agents:
            dx = agent.position.x - centroid_x
            dy = agent.position.y - centroid_y
            spread_sq += dx * dx + dy * dy
        spread = math.sqrt(spread_sq / population)

    return [
        metrics.tick,
        population,
        metrics.neighbor_checks,
        metrics.stale_skips,
        f"{metrics.average_speed:.4f}",
        f"{metrics.min_speed:.4f}",
        f"{metrics.max_speed:.4f}",
        int(metrics.index_rebuilt),
        metrics.index_age,
        metrics.batches,
        f"{tick_ms:.3f}",
        f"{neighbor_checks_per_agent:.4f}",
        f"{tick_ms_per_agent:.4f}",
        f"{centroid_x:.4f}",
        f"{centroid_y:.4f}",
        f"{spread:.4f}",
        outside,
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p95": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    total = sum(values)
    count = len(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(total / count),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p95": _percentile(sorted_values, 0.95),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    log_format: str = "detailed",
    summary_path: Optional[Path] = None,
    summary_window: int = 5000,
    config: Optional[SimulationConfig] = None,
    target: Optional[Sequence[float]] = None,
) -> World:
    config = config if config is not None else SimulationConfig()
    if seed is not None:
        config.seed = seed

    log_mode = log_format.lower().strip()
    if log_mode not in {"basic", "detailed"}:
        raise ValueError(f"Unknown log format: {log_format}")

    world = World(config)
    frame = TickInput(target=None if target is None else (float(target[0]), float(target[1])))
    logger.info(
        "running %d ticks with %d agents (seed=%d, backend=%s, workers=%d)",
        steps,
        len(world.agents),
        config.seed,
        config.index_backend,
        world.scheduler.workers,
    )

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_DETAILED_HEADER if log_mode == "detailed" else _BASIC_HEADER)

    tick_ms_series: list[float] = []
    neighbor_checks_series: list[float] = []
    speed_series: list[float] = []
    max_tick_ms = (-1.0, -1)

    try:
        for tick in range(steps):
            metrics = world.step(tick, frame)
            tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms

            if summary_path:
                tick_ms_series.append(tick_ms)
                neighbor_checks_series.append(float(metrics.neighbor_checks))
                speed_series.append(metrics.average_speed)
                if tick_ms > max_tick_ms[0]:
                    max_tick_ms = (tick_ms, tick)

            if writer:
                if log_mode == "detailed":
                    writer.writerow(_format_detailed_row(world, metrics, tick_ms))
                else:
                    writer.writerow(_format_basic_row(metrics, tick_ms))
    finally:
        if csv_file:
            csv_file.close()
        world.close()

    if summary_path:
        window = max(1, int(summary_window))
        tail_slice = slice(max(0, len(tick_ms_series) - window), len(tick_ms_series))
        summary = {
            "steps": steps,
            "seed": config.seed,
            "agents": config.agent_count,
            "log_format": log_mode,
            "deterministic_log": deterministic_log,
            "tick_ms": _summary_stats(tick_ms_series),
            "neighbor_checks": _summary_stats(neighbor_checks_series),
            "average_speed": _summary_stats(speed_series),
            "over_budget": {
                "tick_ms_gt_frame": sum(1 for value in tick_ms_series if value > config.time_step * 1000.0),
            },
            "peaks": {
                "tick_ms": {"value": float(max_tick_ms[0]), "tick": max_tick_ms[1]},
            },
            "tail_window": {
                "window": window,
                "tick_ms": _summary_stats(tick_ms_series[tail_slice]),
                "neighbor_checks": _summary_stats(neighbor_checks_series[tail_slice]),
            },
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))
    return world


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless flocking simulation")
    parser.add_argument("--steps", type=int, default=600)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument(
        "--log-format",
        choices=["basic", "detailed"],
        default="detailed",
        help="CSV format to write when --log is provided.",
    )
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional JSON file to write summary stats for the run.",
    )
    parser.add_argument(
        "--summary-window",
        type=int,
        default=5000,
        help="Tail window size (ticks) for summary stats.",
    )
    parser.add_argument(
        "--target",
        type=float,
        nargs=2,
        metavar=("X", "Y"),
        default=None,
        help="Fixed goal point the flock seeks for the whole run.",
    )
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--log-level", default="INFO", help="Python logging level")
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = SimulationConfig.from_yaml(args.config) if args.config else None
    run_headless(
        args.steps,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        log_format=args.log_format,
        summary_path=args.summary,
        summary_window=args.summary_window,
        config=config,
        target=args.target,
    )


if __name__ == "__main__":
    main()
