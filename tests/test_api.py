"""Smoke tests for the simulator HTTP gateway."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from ecsim.api import create_app
from ecsim.config import SimulationConfig
from ecsim.simulation import SimulationLoop


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app(SimulationLoop(SimulationConfig(seed=5))))


def test_status_reports_initial_cluster(client: TestClient) -> None:
    resp = client.get("/status")
    assert resp.status_code == 200
    body = resp.json()
    assert body["state"] == "idle"
    assert body["cluster"]["failure_tolerance"] == 1
    assert body["health"]["healthy_nodes"] == 6


def test_store_fail_and_retrieve_flow(client: TestClient) -> None:
    stored = client.post("/commands", json={"command": "store_test_data"})
    assert stored.status_code == 200
    assert stored.json()["ok"] is True

    failed = client.post("/commands", json={"command": "fail_random_node"})
    assert failed.json()["ok"] is True

    retrieved = client.post("/commands", json={"command": "retrieve_test_data"})
    body = retrieved.json()
    assert body["ok"] is True
    assert body["payload"]["data"].startswith("Hello, World!")

    nodes = client.get("/nodes").json()
    assert sum(1 for node in nodes if node["state"] == "failed") == 1

    events = client.get("/events", params={"limit": 5}).json()
    assert len(events) == 5
    assert events[-1]["type"] == "command"


def test_unknown_command_is_rejected(client: TestClient) -> None:
    resp = client.post("/commands", json={"command": "self_destruct"})
    assert resp.status_code == 400


def test_speed_and_tick(client: TestClient) -> None:
    client.post("/commands", json={"command": "start"})
    speed = client.post("/commands", json={"command": "adjust_speed", "delta": 1.0})
    assert speed.json()["payload"]["speed"] == 2.0

    resp = client.post("/tick", json={"elapsed": 0.5})
    assert resp.status_code == 200
    assert resp.json()["clock"] == pytest.approx(1.0)


def test_commands_after_quit_answer_conflict(client: TestClient) -> None:
    assert client.post("/commands", json={"command": "quit"}).status_code == 200
    resp = client.post("/commands", json={"command": "start"})
    assert resp.status_code == 409


def test_tick_rejects_negative_elapsed(client: TestClient) -> None:
    client.post("/commands", json={"command": "start"})
    resp = client.post("/tick", json={"elapsed": -1})
    assert resp.status_code == 422
    assert client.get("/status").json()["clock"] == 0.0


def test_events_with_zero_limit_is_empty(client: TestClient) -> None:
    client.post("/commands", json={"command": "start"})
    assert client.get("/events", params={"limit": 0}).json() == []
    assert client.get("/events", params={"limit": -1}).status_code == 422
