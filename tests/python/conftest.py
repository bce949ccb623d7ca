import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
src_root = ROOT / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))

from flocking.sim.core.config import FlockingConfig, MotionConfig, SimulationConfig  # noqa: E402


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="run long full-population simulation tests",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: marks tests that run the full default population for many ticks",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--run-slow"):
        return

    skip_marker = pytest.mark.skip(reason="Full-population run (use --run-slow)")

    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture
def small_config() -> SimulationConfig:
    return SimulationConfig(
        agent_count=60,
        window_width=300.0,
        window_height=200.0,
        workers=2,
        seed=11,
        flocking=FlockingConfig(),
        motion=MotionConfig(initial_speed=3.0),
    )
