from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Set

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from ..sim.core.config import SimulationConfig
from ..sim.core.world import World

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueuedSnapshot:
    tick: int
    payload: str


def _require_float(payload: Dict[str, Any], key: str) -> float:
    if key not in payload:
        raise ValueError(f"missing field {key!r}")
    try:
        return float(payload[key])
    except (TypeError, ValueError):
        raise ValueError(f"field {key!r} must be a number, got {payload[key]!r}") from None


def _optional_float(payload: Dict[str, Any], key: str) -> Optional[float]:
    if payload.get(key) is None:
        return None
    return _require_float(payload, key)


class SimulationController:
    def __init__(self, config: SimulationConfig, broadcast_interval: int = 1):
        self.config = config
        self.world = World(config)
        self.broadcast_interval = max(1, broadcast_interval)
        self.running = False
        self.tick = 0
        self.speed_multiplier = 1.0
        self.clients: Set[WebSocket] = set()
        self._client_last_sent: Dict[WebSocket, int] = {}
        self._snapshot_queue: deque[QueuedSnapshot] = deque()
        self._lock = asyncio.Lock()
        self._queue_lock = asyncio.Lock()
        self._broadcast_task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._broadcast_task is None:
            self._broadcast_task = asyncio.create_task(self._loop())
        self.running = True

    async def stop(self) -> None:
        self.running = False

    async def reset(self, seed: Optional[int] = None) -> None:
        async with self._lock:
            self.world.reset(seed)
            self.tick = 0
        async with self._queue_lock:
            self._snapshot_queue.clear()
        for client in self._client_last_sent:
            self._client_last_sent[client] = -1
        await self._broadcast_snapshot()

    async def drive_anchor(self, rotation: Optional[float], forward: Optional[float]) -> None:
        async with self._lock:
            self.world.drive_agent(World.ANCHOR_ID, rotation=rotation, forward=forward)

    async def place_agent(self, agent_id: int, x: float, y: float) -> None:
        async with self._lock:
            self.world.place_agent(agent_id, x, y)
        if not self.running:
            await self._broadcast_snapshot()

    async def update_formation(self, **changes: Any) -> None:
        async with self._lock:
            self.world.set_formation(**changes)

    async def update_precision(self, modality: str, radial: Optional[float], angular: Optional[float]) -> None:
        async with self._lock:
            self.world.set_precision(modality, radial=radial, angular=angular)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.time_step / self.speed_multiplier)
            if not self.running:
                continue
            async with self._lock:
                self.world.step(self.tick)
                self.tick += 1
            if self.tick % self.broadcast_interval == 0:
                await self._broadcast_snapshot()

    async def acknowledge(self, tick: int) -> None:
        async with self._queue_lock:
            while self._snapshot_queue and self._snapshot_queue[0].tick <= tick:
                self._snapshot_queue.popleft()

    def _serialize_snapshot(self) -> QueuedSnapshot:
        snapshot = self.world.snapshot(self.tick)
        payload = {
            "type": "snapshot",
            "tick": snapshot.tick,
            "payload": {
                "tick": snapshot.tick,
                "metrics": asdict(snapshot.metrics),
                "agents": snapshot.agents,
                "world": asdict(snapshot.world),
                "metadata": asdict(snapshot.metadata),
            },
        }
        return QueuedSnapshot(tick=snapshot.tick, payload=json.dumps(payload))

    async def _send_pending_snapshots(self, client: WebSocket) -> None:
        last_sent = self._client_last_sent.get(client, -1)
        async with self._queue_lock:
            pending = [item for item in self._snapshot_queue if item.tick > last_sent]
        for item in pending:
            await client.send_text(item.payload)
            last_sent = item.tick
        self._client_last_sent[client] = last_sent

    async def _broadcast_snapshot(self) -> None:
        queued = self._serialize_snapshot()
        async with self._queue_lock:
            self._snapshot_queue.append(queued)
        stale: Set[WebSocket] = set()
        for client in self.clients:
            try:
                await self._send_pending_snapshots(client)
            except WebSocketDisconnect:
                stale.add(client)
        for client in stale:
            self.clients.discard(client)
            self._client_last_sent.pop(client, None)


app = FastAPI(title="Marblebots Swarm Simulation")
controller = SimulationController(SimulationConfig())
static_dir = Path(__file__).parent / "static"
app.mount("/static", StaticFiles(directory=static_dir), name="static")


@app.exception_handler(ValueError)
async def _value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning("rejected %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": str(exc)}, status_code=400)


@app.on_event("startup")
async def _startup() -> None:
    logger.info("starting simulation loop with %d agents", len(controller.world.agents))
    await controller.start()


@app.get("/")
async def index() -> FileResponse:
    return FileResponse(static_dir / "index.html")


@app.get("/api/status")
async def status() -> JSONResponse:
    snapshot = controller.world.snapshot(controller.tick)
    return JSONResponse(
        {
            "running": controller.running,
            "tick": controller.tick,
            "population": len(controller.world.agents),
            "metrics": asdict(snapshot.metrics),
            "world": asdict(snapshot.world),
        }
    )


@app.post("/api/control/start")
async def start_simulation() -> JSONResponse:
    controller.running = True
    return JSONResponse({"running": True})


@app.post("/api/control/stop")
async def stop_simulation() -> JSONResponse:
    controller.running = False
    return JSONResponse({"running": False})


@app.post("/api/control/reset")
async def reset_simulation(payload: Optional[dict] = None) -> JSONResponse:
    seed = (payload or {}).get("seed")
    await controller.reset(int(seed) if seed is not None else None)
    return JSONResponse({"running": controller.running, "tick": controller.tick, "seed": controller.config.seed})


@app.post("/api/control/speed")
async def set_speed(payload: dict) -> JSONResponse:
    speed = float(payload.get("multiplier", 1.0))
    controller.speed_multiplier = max(0.1, min(5.0, speed))
    return JSONResponse({"multiplier": controller.speed_multiplier})


@app.post("/api/control/anchor")
async def drive_anchor(payload: dict) -> JSONResponse:
    rotation = _optional_float(payload, "rotation")
    forward = _optional_float(payload, "forward")
    await controller.drive_anchor(rotation, forward)
    return JSONResponse({"rotation": rotation, "forward": forward})


@app.post("/api/control/place")
async def place_agent(payload: dict) -> JSONResponse:
    agent_id = int(payload.get("id", World.ANCHOR_ID))
    x = _require_float(payload, "x")
    y = _require_float(payload, "y")
    await controller.place_agent(agent_id, x, y)
    return JSONResponse({"id": agent_id, "x": x, "y": y})


@app.post("/api/config/formation")
async def configure_formation(payload: dict) -> JSONResponse:
    changes: Dict[str, Any] = {}
    if payload.get("formation_type") is not None:
        changes["formation_type"] = str(payload["formation_type"])
    if payload.get("polygon_sides") is not None:
        changes["polygon_sides"] = int(_require_float(payload, "polygon_sides"))
    for key in ("min_radius_threshold", "segment_size"):
        value = _optional_float(payload, key)
        if value is not None:
            changes[key] = value
    if payload.get("anchor_faces_north") is not None:
        changes["anchor_faces_north"] = bool(payload["anchor_faces_north"])
    await controller.update_formation(**changes)
    formation = controller.config.formation
    return JSONResponse(
        {
            "formation_type": formation.formation_type.value,
            "polygon_sides": formation.polygon_sides,
            "min_radius_threshold": formation.min_radius_threshold,
            "segment_size": formation.segment_size,
            "anchor_faces_north": formation.anchor_faces_north,
            "active_rules": [rule.name for rule in controller.world.active_rules()],
        }
    )


@app.post("/api/config/sensors")
async def configure_sensors(payload: dict) -> JSONResponse:
    modality = str(payload.get("modality", ""))
    radial = _optional_float(payload, "radial")
    angular = _optional_float(payload, "angular")
    await controller.update_precision(modality, radial, angular)
    sensors = controller.config.sensors
    return JSONResponse(
        {
            "ir": {"radial": sensors.ir.radial_precision, "angular": sensors.ir.angular_precision},
            "uwb": {"radial": sensors.uwb.radial_precision, "angular": sensors.uwb.angular_precision},
        }
    )


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    controller.clients.add(websocket)
    controller._client_last_sent[websocket] = -1
    await controller._send_pending_snapshots(websocket)
    try:
        while True:
            message = await websocket.receive_text()
            try:
                payload = json.loads(message)
            except json.JSONDecodeError:
                logger.warning("ignoring malformed websocket message")
                continue
            if payload.get("type") == "ack":
                tick = payload.get("tick")
                if isinstance(tick, int):
                    await controller.acknowledge(tick)
    except WebSocketDisconnect:
        controller.clients.discard(websocket)
        controller._client_last_sent.pop(websocket, None)


__all__ = ["app", "controller"]
