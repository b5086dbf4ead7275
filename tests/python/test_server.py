import asyncio

import pytest
from fastapi.testclient import TestClient

from driftcells.app.server import SimulationController, create_app
from driftcells.sim.core.config import SimulationConfig, SpawnConfig
from driftcells.sim.types.modes import SpawnMode


def _config() -> SimulationConfig:
    return SimulationConfig(agent_count=12, seed=5, spawn=SpawnConfig(mode=SpawnMode.UNIFORM))


def test_snapshot_queue_ack_cleanup() -> None:
    controller = SimulationController(_config())

    async def exercise() -> None:
        await controller.step()
        await controller.step()
        async with controller._queue_lock:
            queued_ticks = [item.tick for item in controller._snapshot_queue]
        assert queued_ticks == [1, 2]
        await controller.acknowledge(1)
        async with controller._queue_lock:
            remaining_ticks = [item.tick for item in controller._snapshot_queue]
        assert remaining_ticks == [2]
        await controller.shutdown()

    asyncio.run(exercise())


def test_pointer_and_resize_messages() -> None:
    controller = SimulationController(_config())

    async def exercise() -> None:
        await controller.handle_message({"type": "pointer", "x": 12, "y": -4})
        await controller.handle_message({"type": "resize", "width": 640, "height": 480})
        await controller.handle_message({"type": "resize", "width": -1, "height": 480})
        await controller.handle_message({"type": "pointer", "x": "left"})
        await controller.step()

    asyncio.run(exercise())

    assert (controller.pointer.x, controller.pointer.y) == (12.0, -4.0)
    assert controller.bounds.width == 640.0
    assert controller.simulation.bounds.height == 480.0


@pytest.fixture
def client():
    with TestClient(create_app(_config(), autostart=False)) as test_client:
        yield test_client


def test_status_and_step(client) -> None:
    status = client.get("/api/status").json()
    assert status["running"] is False
    assert status["tick"] == 0
    assert status["population"] == 12

    assert client.post("/api/control/step").json() == {"tick": 1}
    assert client.get("/api/status").json()["metrics"]["population"] == 12


def test_mode_endpoints(client) -> None:
    assert client.post("/api/control/target-mode", json={"mode": "average"}).json() == {"mode": "average"}
    assert client.post("/api/control/color-mode", json={"mode": "cells"}).json() == {"mode": "cells"}
    assert client.post("/api/control/steering-mode", json={"mode": "wander"}).json() == {"mode": "wander"}
    response = client.post("/api/control/target-mode", json={"mode": "spiral"})
    assert response.status_code == 400

    status = client.get("/api/status").json()
    assert status["target_mode"] == "average"
    assert status["color_mode"] == "cells"
    assert status["steering_mode"] == "wander"


def test_reseed_and_speed(client) -> None:
    assert client.post("/api/control/reseed", json={"seed": 321}).json() == {"noise_seed": 321}
    assert client.get("/api/status").json()["noise_seed"] == 321
    assert client.post("/api/control/speed", json={"multiplier": 50}).json() == {"multiplier": 5.0}


def test_websocket_receives_queued_snapshot(client) -> None:
    client.post("/api/control/step")

    with client.websocket_connect("/ws") as websocket:
        message = websocket.receive_json()
        assert message["type"] == "snapshot"
        assert message["tick"] == 1
        payload = message["payload"]
        assert len(payload["agents"]) == 12
        assert len(payload["cells"]) == 12
        assert payload["metadata"]["seed"] == 5
        websocket.send_json({"type": "ack", "tick": 1})
