from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from ..sim.core.config import AppConfig, SimulationConfig
from ..sim.core.world import World
from ..sim.types.inputs import Rect, TickInput

logger = logging.getLogger(__name__)


def parse_input(payload: Dict[str, Any], fallback: TickInput) -> TickInput:
    """Turn a viewer message into a tick input, keeping fields the message omits."""
    target = fallback.target
    if "target" in payload:
        raw = payload["target"]
        if raw is None:
            target = None
        elif isinstance(raw, (list, tuple)) and len(raw) == 2:
            target = (float(raw[0]), float(raw[1]))
        else:
            raise ValueError(f"target must be [x, y] or null, got {raw!r}")
    bounds = fallback.bounds
    if "width" in payload and "height" in payload:
        width = float(payload["width"])
        height = float(payload["height"])
        if width <= 0.0 or height <= 0.0:
            raise ValueError(f"visible region must be positive, got {width}x{height}")
        bounds = Rect.from_size(width, height)
    return TickInput(target=target, bounds=bounds)


class SimulationController:
    def __init__(self, config: SimulationConfig, broadcast_interval: int = 1):
        self.config = config
        self.world = World(config)
        self.broadcast_interval = max(1, broadcast_interval)
        self.running = False
        self.tick = 0
        self.speed_multiplier = 1.0
        self.frame = TickInput()
        self.clients: Set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._broadcast_task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._broadcast_task is None:
            self._broadcast_task = asyncio.create_task(self._loop())
        self.running = True

    async def stop(self) -> None:
        self.running = False

    async def reset(self) -> None:
        async with self._lock:
            self.world.reset()
            self.tick = 0
        await self._broadcast_snapshot()

    def handle_input(self, payload: Dict[str, Any]) -> None:
        try:
            self.frame = parse_input(payload, self.frame)
        except (TypeError, ValueError) as exc:
            logger.warning("ignoring malformed input frame %r: %s", payload, exc)

    async def advance(self) -> None:
        async with self._lock:
            self.world.step(self.tick, self.frame)
            self.tick += 1

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.time_step / self.speed_multiplier)
            if not self.running:
                continue
            await self.advance()
            if self.tick % self.broadcast_interval == 0:
                await self._broadcast_snapshot()

    def snapshot_payload(self) -> str:
        snapshot = self.world.snapshot(self.tick)
        return json.dumps(
            {
                "tick": snapshot.tick,
                "metrics": None if snapshot.metrics is None else asdict(snapshot.metrics),
                "world": asdict(snapshot.world),
                "agents": snapshot.agents,
            }
        )

    async def _broadcast_snapshot(self) -> None:
        if not self.clients:
            return
        payload = self.snapshot_payload()
        stale: Set[WebSocket] = set()
        for client in self.clients:
            try:
                await client.send_text(payload)
            except WebSocketDisconnect:
                stale.add(client)
        for client in stale:
            self.clients.discard(client)


app_config = AppConfig()
app = FastAPI(title="Flocking Simulation")
controller = SimulationController(app_config.simulation, app_config.broadcast_interval)
static_dir = Path(__file__).parent / "static"
app.mount("/static", StaticFiles(directory=static_dir), name="static")


@app.on_event("startup")
async def _startup() -> None:
    await controller.start()


@app.on_event("shutdown")
async def _shutdown() -> None:
    await controller.stop()
    controller.world.close()


@app.get("/")
async def index() -> FileResponse:
    return FileResponse(static_dir / "index.html")


@app.get("/api/status")
async def status() -> JSONResponse:
    metrics = controller.world.metrics
    return JSONResponse(
        {
            "running": controller.running,
            "tick": controller.tick,
            "population": len(controller.world.agents),
            "target": None if controller.frame.target is None else list(controller.frame.target),
            "metrics": None if metrics is None else asdict(metrics),
        }
    )


@app.get("/api/config")
async def config() -> JSONResponse:
    return JSONResponse(asdict(controller.config))


@app.post("/api/control/start")
async def start_simulation() -> JSONResponse:
    controller.running = True
    return JSONResponse({"running": True})


@app.post("/api/control/stop")
async def stop_simulation() -> JSONResponse:
    controller.running = False
    return JSONResponse({"running": False})


@app.post("/api/control/reset")
async def reset_simulation() -> JSONResponse:
    await controller.reset()
    return JSONResponse({"running": controller.running, "tick": controller.tick})


@app.post("/api/control/speed")
async def set_speed(payload: dict) -> JSONResponse:
    speed = float(payload.get("multiplier", 1.0))
    controller.speed_multiplier = max(0.1, min(5.0, speed))
    return JSONResponse({"multiplier": controller.speed_multiplier})


@app.post("/api/input")
async def post_input(payload: dict) -> JSONResponse:
    controller.handle_input(payload)
    target = controller.frame.target
    return JSONResponse({"target": None if target is None else list(target)})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    controller.clients.add(websocket)
    await controller._broadcast_snapshot()
    try:
        while True:
            message = await websocket.receive_text()
            try:
                payload = json.loads(message)
            except json.JSONDecodeError:
                logger.warning("ignoring non-JSON viewer message")
                continue
            if isinstance(payload, dict):
                controller.handle_input(payload)
    except WebSocketDisconnect:
        controller.clients.discard(websocket)


__all__ = ["app", "controller", "parse_input", "SimulationController"]
