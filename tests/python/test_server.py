import asyncio

import pytest
from fastapi.testclient import TestClient

from flocking.app import server
from flocking.app.server import SimulationController, parse_input
from flocking.sim.core.config import SimulationConfig
from flocking.sim.types.inputs import Rect, TickInput


def _controller() -> SimulationController:
    return SimulationController(SimulationConfig(agent_count=10, workers=1))


def test_parse_input_target_and_bounds():
    frame = parse_input({"target": [3, -4], "width": 200, "height": 100}, TickInput())

    assert frame.target == (3.0, -4.0)
    assert frame.bounds == Rect(100.0, 50.0)


def test_parse_input_keeps_omitted_fields_and_clears_target():
    previous = TickInput(target=(1.0, 1.0), bounds=Rect(5.0, 5.0))

    assert parse_input({}, previous) == previous
    assert parse_input({"target": None}, previous) == TickInput(target=None, bounds=Rect(5.0, 5.0))


@pytest.mark.parametrize("payload", [{"target": [1]}, {"target": "here"}, {"width": 0, "height": 10}])
def test_parse_input_rejects_malformed_frames(payload):
    with pytest.raises(ValueError):
        parse_input(payload, TickInput())


def test_controller_ignores_malformed_input():
    controller = _controller()
    controller.handle_input({"target": [2.0, 3.0]})
    controller.handle_input({"target": [1.0]})

    assert controller.frame.target == (2.0, 3.0)
    controller.world.close()


def test_controller_advance_and_reset():
    controller = _controller()

    async def exercise() -> None:
        controller.handle_input({"target": [0.0, 0.0]})
        await controller.advance()
        await controller.advance()
        assert controller.tick == 2
        assert controller.world.metrics is not None
        await controller.reset()
        assert controller.tick == 0

    asyncio.run(exercise())
    controller.world.close()


def test_status_and_input_endpoints():
    client = TestClient(server.app)

    response = client.post("/api/input", json={"target": [5.0, 6.0]})
    assert response.status_code == 200
    assert response.json() == {"target": [5.0, 6.0]}

    status = client.get("/api/status").json()
    assert status["population"] == server.controller.config.agent_count
    assert status["target"] == [5.0, 6.0]

    config = client.get("/api/config").json()
    assert config["flocking"]["vision_radius"] == 40.0

    speed = client.post("/api/control/speed", json={"multiplier": 50}).json()
    assert speed["multiplier"] == 5.0
