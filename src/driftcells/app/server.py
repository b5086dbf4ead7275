from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Dict, Set

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from ..sim.core.config import SimulationConfig
from ..sim.core.errors import ConfigurationError
from ..sim.core.world import Simulation
from ..sim.types.modes import ColorMode, SteeringMode, TargetMode
from ..sim.utils.math2d import BoundingBox, Position

logger = logging.getLogger(__name__)

_MAX_QUEUED_SNAPSHOTS = 120


@dataclass(frozen=True)
class QueuedSnapshot:
    tick: int
    payload: str


class SimulationController:
    def __init__(self, config: SimulationConfig, broadcast_interval: int = 1):
        self.config = config
        self.simulation = Simulation(config)
        self.broadcast_interval = max(1, broadcast_interval)
        self.running = False
        self.speed_multiplier = 1.0
        self.pointer: Position | None = None
        self.bounds: BoundingBox | None = None
        self.clients: Set[WebSocket] = set()
        self._client_last_sent: Dict[WebSocket, int] = {}
        self._snapshot_queue: deque[QueuedSnapshot] = deque(maxlen=_MAX_QUEUED_SNAPSHOTS)
        self._lock = asyncio.Lock()
        self._queue_lock = asyncio.Lock()
        self._broadcast_task: asyncio.Task | None = None

    @property
    def tick(self) -> int:
        return self.simulation.tick_count

    async def start(self) -> None:
        if self._broadcast_task is None:
            self._broadcast_task = asyncio.create_task(self._loop())
        self.running = True

    async def stop(self) -> None:
        self.running = False

    async def shutdown(self) -> None:
        self.running = False
        if self._broadcast_task is not None:
            self._broadcast_task.cancel()
            try:
                await self._broadcast_task
            except asyncio.CancelledError:
                pass
            self._broadcast_task = None
        self.simulation.close()

    async def reset(self) -> None:
        async with self._lock:
            self.simulation.reset(self.bounds)
        async with self._queue_lock:
            self._snapshot_queue.clear()
        for client in self._client_last_sent:
            self._client_last_sent[client] = -1
        await self._broadcast_snapshot()

    async def reseed(self, seed: int | None = None) -> int:
        async with self._lock:
            return self.simulation.reseed_noise(seed)

    async def set_target_mode(self, mode: TargetMode) -> TargetMode:
        async with self._lock:
            return self.simulation.set_target_mode(mode)

    async def set_color_mode(self, mode: ColorMode) -> ColorMode:
        async with self._lock:
            return self.simulation.set_color_mode(mode)

    async def set_steering_mode(self, mode: SteeringMode) -> SteeringMode:
        async with self._lock:
            return self.simulation.set_steering_mode(mode)

    async def step(self) -> None:
        async with self._lock:
            self.simulation.tick(self.config.time_step, bounds=self.bounds, pointer=self.pointer)
        if self.tick % self.broadcast_interval == 0:
            await self._broadcast_snapshot()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.time_step / self.speed_multiplier)
            if not self.running:
                continue
            await self.step()

    async def acknowledge(self, tick: int) -> None:
        async with self._queue_lock:
            while self._snapshot_queue and self._snapshot_queue[0].tick <= tick:
                self._snapshot_queue.popleft()

    async def handle_message(self, payload: Dict[str, Any]) -> None:
        kind = payload.get("type")
        if kind == "ack":
            tick = payload.get("tick")
            if isinstance(tick, int):
                await self.acknowledge(tick)
        elif kind == "pointer":
            try:
                self.pointer = Position(float(payload["x"]), float(payload["y"]))
            except (KeyError, TypeError, ValueError):
                logger.debug("ignoring malformed pointer message: %r", payload)
        elif kind == "resize":
            try:
                bounds = BoundingBox(float(payload["width"]), float(payload["height"]))
            except (KeyError, TypeError, ValueError):
                logger.debug("ignoring malformed resize message: %r", payload)
                return
            if bounds.is_valid():
                self.bounds = bounds

    def _serialize_snapshot(self) -> QueuedSnapshot:
        snapshot = self.simulation.snapshot()
        payload = {
            "type": "snapshot",
            "tick": snapshot.tick,
            "payload": {
                "tick": snapshot.tick,
                "metrics": asdict(snapshot.metrics) if snapshot.metrics is not None else None,
                "agents": snapshot.agents,
                "cells": snapshot.cells,
                "target": snapshot.target,
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
        async with self._lock:
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


def _parse_mode(enum_type: type, payload: dict) -> Any:
    try:
        return enum_type(payload.get("mode"))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"unknown mode {payload.get('mode')!r}") from exc


def create_app(config: SimulationConfig | None = None, autostart: bool = True) -> FastAPI:
    try:
        controller = SimulationController(config or SimulationConfig())
    except ConfigurationError:
        logger.exception("refusing to start with an invalid configuration")
        raise
    app = FastAPI(title="Drifting Cells Simulation")
    app.state.controller = controller

    @app.on_event("startup")
    async def _startup() -> None:
        if autostart:
            await controller.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await controller.shutdown()

    @app.get("/api/status")
    async def status() -> JSONResponse:
        simulation = controller.simulation
        metrics = simulation.metrics
        return JSONResponse(
            {
                "running": controller.running,
                "tick": controller.tick,
                "population": len(simulation.population),
                "target_mode": simulation.target_mode.value,
                "color_mode": simulation.color_mode.value,
                "steering_mode": simulation.steering_mode.value,
                "noise_seed": simulation.noise.seed,
                "metrics": asdict(metrics) if metrics is not None else None,
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

    @app.post("/api/control/step")
    async def step_simulation() -> JSONResponse:
        await controller.step()
        return JSONResponse({"tick": controller.tick})

    @app.post("/api/control/reset")
    async def reset_simulation() -> JSONResponse:
        await controller.reset()
        return JSONResponse({"running": controller.running, "tick": controller.tick})

    @app.post("/api/control/speed")
    async def set_speed(payload: dict) -> JSONResponse:
        speed = float(payload.get("multiplier", 1.0))
        controller.speed_multiplier = max(0.1, min(5.0, speed))
        return JSONResponse({"multiplier": controller.speed_multiplier})

    @app.post("/api/control/reseed")
    async def reseed(payload: dict | None = None) -> JSONResponse:
        seed = (payload or {}).get("seed")
        noise_seed = await controller.reseed(int(seed) if seed is not None else None)
        return JSONResponse({"noise_seed": noise_seed})

    @app.post("/api/control/target-mode")
    async def target_mode(payload: dict) -> JSONResponse:
        mode = await controller.set_target_mode(_parse_mode(TargetMode, payload))
        return JSONResponse({"mode": mode.value})

    @app.post("/api/control/color-mode")
    async def color_mode(payload: dict) -> JSONResponse:
        mode = await controller.set_color_mode(_parse_mode(ColorMode, payload))
        return JSONResponse({"mode": mode.value})

    @app.post("/api/control/steering-mode")
    async def steering_mode(payload: dict) -> JSONResponse:
        mode = await controller.set_steering_mode(_parse_mode(SteeringMode, payload))
        return JSONResponse({"mode": mode.value})

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
                    continue
                if isinstance(payload, dict):
                    await controller.handle_message(payload)
        except WebSocketDisconnect:
            controller.clients.discard(websocket)
            controller._client_last_sent.pop(websocket, None)

    return app


app = create_app()

__all__ = ["app", "create_app", "SimulationController"]
