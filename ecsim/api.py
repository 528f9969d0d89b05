"""FastAPI gateway over a single simulation loop."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from .errors import InvalidConfiguration
from .simulation import Command, CommandResult, SimulationLoop

logger = logging.getLogger(__name__)


class CommandRequest(BaseModel):
    command: str
    delta: float = Field(default=0.0)


class TickRequest(BaseModel):
    elapsed: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)


def _jsonable(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def _result_body(result: CommandResult) -> dict:
    return {
        "command": result.command.type.value,
        "ok": result.ok,
        "message": result.message,
        "payload": _jsonable(result.payload),
    }


def create_app(loop: Optional[SimulationLoop] = None) -> FastAPI:
    simulation = loop or SimulationLoop()
    app = FastAPI(title="Erasure Coding Simulator", version="0.1.0")
    app.state.simulation = simulation

    @app.get("/status")
    def get_status() -> dict:
        return simulation.snapshot().as_dict()

    @app.get("/nodes")
    def list_nodes() -> list:
        return [node.as_dict() for node in simulation.snapshot().cluster.nodes]

    @app.get("/events")
    def list_events(limit: int = Query(default=20, ge=0)) -> list:
        return simulation.recent_events(limit)

    @app.post("/commands")
    def submit_command(payload: CommandRequest) -> dict:
        try:
            command = Command.parse(payload.command, payload.delta)
        except InvalidConfiguration as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if simulation.stopped:
            raise HTTPException(status_code=409, detail="simulation has stopped")
        result = simulation.execute(command)
        logger.info("HTTP command %s -> %s", command.type.value, result.message)
        return _result_body(result)

    @app.post("/tick")
    def tick(payload: Optional[TickRequest] = None) -> dict:
        elapsed = payload.elapsed if payload else None
        try:
            snapshot = simulation.tick(elapsed)
        except InvalidConfiguration as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return snapshot.as_dict()

    return app
