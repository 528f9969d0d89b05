"""Command-driven simulation loop.

``SimulationLoop`` owns the cluster, the failure generator, the recovery
coordinator and the event clock. Front ends (CLI, shell, HTTP gateway) only
submit ``Command`` objects and read ``SimulationSnapshot`` values.
"""

from __future__ import annotations

import logging
import math
import random
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from .clock import EventClock
from .cluster import Cluster, ClusterHealth, ClusterSnapshot
from .config import SimulationConfig
from .errors import InvalidConfiguration
from .failures import FailureGenerator
from .models import FailurePattern, NodeState
from .recovery import RecoveryCoordinator, RecoveryOutcome

logger = logging.getLogger(__name__)

TEST_OBJECT_ID = "test-data"
TEST_PAYLOAD = b"Hello, World! This is a test of erasure coding."

MIN_SPEED = 0.1
MAX_SPEED = 10.0


class CommandType(Enum):
    START = "start"
    PAUSE = "pause"
    RESET = "reset"
    FAIL_RANDOM_NODE = "fail_random_node"
    RECOVER_RANDOM_NODE = "recover_random_node"
    FAIL_ALL_NODES = "fail_all_nodes"
    RECOVER_ALL_NODES = "recover_all_nodes"
    STORE_TEST_DATA = "store_test_data"
    RETRIEVE_TEST_DATA = "retrieve_test_data"
    ADJUST_SPEED = "adjust_speed"
    QUIT = "quit"


@dataclass(frozen=True)
class Command:
    type: CommandType
    delta: float = 0.0

    @classmethod
    def adjust_speed(cls, delta: float) -> "Command":
        return cls(CommandType.ADJUST_SPEED, delta)

    @classmethod
    def parse(cls, name: str, delta: float = 0.0) -> "Command":
        try:
            command_type = CommandType(name.strip().lower().replace("-", "_"))
        except ValueError:
            raise InvalidConfiguration(f"Unknown command '{name}'") from None
        return cls(command_type, delta)


@dataclass
class CommandResult:
    command: Command
    ok: bool
    message: str
    payload: Dict[str, Any] = field(default_factory=dict)


class LoopState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass
class SimulationSnapshot:
    state: LoopState
    speed: float
    clock: float
    cluster: ClusterSnapshot
    health: ClusterHealth
    recovery: Dict[str, Any]
    events: List[Dict[str, Any]]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "speed": self.speed,
            "clock": self.clock,
            "cluster": self.cluster.as_dict(),
            "health": {
                "total_nodes": self.health.total_nodes,
                "healthy_nodes": self.health.healthy_nodes,
                "degraded_nodes": self.health.degraded_nodes,
                "failed_nodes": self.health.failed_nodes,
                "health_percentage": self.health.health_percentage,
                "description": self.health.description,
                "is_critical": self.health.is_critical,
            },
            "recovery": dict(self.recovery),
            "events": list(self.events),
        }


class SimulationLoop:
    def __init__(self, config: Optional[SimulationConfig] = None, *, rng: Optional[random.Random] = None):
        self.config = (config or SimulationConfig()).validate()
        self.rng = rng or random.Random(self.config.seed)
        self.events: Deque[Dict[str, Any]] = deque(maxlen=self.config.event_history)
        self._pending: Deque[Command] = deque()
        self._handlers: Dict[CommandType, Callable[[Command], CommandResult]] = {
            CommandType.START: self._start,
            CommandType.PAUSE: self._pause,
            CommandType.RESET: self._reset,
            CommandType.FAIL_RANDOM_NODE: self._fail_random_node,
            CommandType.RECOVER_RANDOM_NODE: self._recover_random_node,
            CommandType.FAIL_ALL_NODES: self._fail_all_nodes,
            CommandType.RECOVER_ALL_NODES: self._recover_all_nodes,
            CommandType.STORE_TEST_DATA: self._store_test_data,
            CommandType.RETRIEVE_TEST_DATA: self._retrieve_test_data,
            CommandType.ADJUST_SPEED: self._adjust_speed,
            CommandType.QUIT: self._quit,
        }
        self._setup_runtime()

    def _setup_runtime(self) -> None:
        self.coordinator = RecoveryCoordinator()
        self.cluster = Cluster.from_config(self.config, coordinator=self.coordinator)
        self.cluster.register_observer(self._record_event)
        self.failures = FailureGenerator(self.rng, partition_size=self.config.partition_size)
        self.clock = EventClock()
        self.state = LoopState.IDLE
        self.speed = 1.0
        self._stress_steps = 0

    # Event handling -----------------------------------------------------
    def _record_event(self, event: Dict[str, Any]) -> None:
        self.events.append({"time": round(self.clock.now, 3), **event})

    def recent_events(self, limit: int = 10) -> List[Dict[str, Any]]:
        if limit <= 0:
            return []
        return list(self.events)[-limit:]

    # Command surface ----------------------------------------------------
    @property
    def stopped(self) -> bool:
        return self.state is LoopState.STOPPED

    def submit(self, command: Command) -> bool:
        if self.stopped:
            logger.debug("Ignoring %s after quit", command.type.value)
            return False
        self._pending.append(command)
        return True

    def process_pending(self) -> List[CommandResult]:
        results = []
        while self._pending:
            results.append(self._dispatch(self._pending.popleft()))
            if self.stopped:
                self._pending.clear()
        return results

    def execute(self, command: Command) -> CommandResult:
        if not self.submit(command):
            return CommandResult(command, False, "simulation has stopped")
        for result in reversed(self.process_pending()):
            if result.command is command:
                return result
        return CommandResult(command, False, "discarded after quit")

    def _dispatch(self, command: Command) -> CommandResult:
        try:
            result = self._handlers[command.type](command)
        except InvalidConfiguration as exc:
            logger.warning("Rejected %s: %s", command.type.value, exc)
            result = CommandResult(command, False, f"rejected: {exc}")
        logger.debug("%s -> %s", command.type.value, result.message)
        self._record_event(
            {"type": "command", "command": command.type.value, "ok": result.ok, "message": result.message}
        )
        return result

    # Ticks --------------------------------------------------------------
    def tick(self, elapsed: Optional[float] = None) -> SimulationSnapshot:
        """Process queued commands, then advance simulated time when running.

        Raises InvalidConfiguration for a non-positive or non-finite ``elapsed``.
        """
        if elapsed is not None and not (math.isfinite(elapsed) and elapsed > 0):
            raise InvalidConfiguration(f"tick length must be a positive number of seconds (got {elapsed})")
        self.process_pending()
        if self.state is LoopState.RUNNING:
            step = self.config.tick_interval if elapsed is None else elapsed
            self.clock.advance(step * self.speed)
        return self.snapshot()

    def snapshot(self) -> SimulationSnapshot:
        return SimulationSnapshot(
            state=self.state,
            speed=self.speed,
            clock=self.clock.now,
            cluster=self.cluster.snapshot(),
            health=self.cluster.health(),
            recovery=self.coordinator.stats.as_dict(),
            events=self.recent_events(20),
        )

    # Handlers -----------------------------------------------------------
    def _start(self, command: Command) -> CommandResult:
        if self.state is LoopState.RUNNING:
            return CommandResult(command, True, "simulation already running")
        if self.state is LoopState.IDLE:
            self._schedule_auto_actions()
        self.state = LoopState.RUNNING
        return CommandResult(command, True, "simulation running")

    def _pause(self, command: Command) -> CommandResult:
        if self.state is LoopState.RUNNING:
            self.state = LoopState.PAUSED
            return CommandResult(command, True, "simulation paused")
        if self.state is LoopState.PAUSED:
            self.state = LoopState.RUNNING
            return CommandResult(command, True, "simulation resumed")
        return CommandResult(command, False, "simulation has not been started")

    def _reset(self, command: Command) -> CommandResult:
        if self.config.seed is not None:
            self.rng.seed(self.config.seed)
        self.events.clear()
        self._setup_runtime()
        return CommandResult(command, True, "simulation reset")

    def _fail_random_node(self, command: Command) -> CommandResult:
        changed = self.cluster.apply_failure(self.failures.generate(FailurePattern.RANDOM, self.cluster))
        if not changed:
            return CommandResult(command, False, "no healthy node left to fail")
        return CommandResult(
            command,
            True,
            f"node {changed[0]} failed; failure tolerance now {self.cluster.failure_tolerance()}",
            {"node_ids": changed},
        )

    def _recover_random_node(self, command: Command) -> CommandResult:
        node_id = self.failures.pick_failed_node(self.cluster)
        if node_id is None or not self.cluster.recover_node(node_id):
            return CommandResult(command, False, "no failed nodes to recover")
        return CommandResult(command, True, f"node {node_id} recovered", {"node_ids": [node_id]})

    def _fail_all_nodes(self, command: Command) -> CommandResult:
        changed = self.cluster.set_all_node_states(NodeState.FAILED)
        return CommandResult(command, True, f"{len(changed)} node(s) failed", {"node_ids": changed})

    def _recover_all_nodes(self, command: Command) -> CommandResult:
        changed = self.cluster.set_all_node_states(NodeState.HEALTHY)
        return CommandResult(command, True, f"{len(changed)} node(s) recovered", {"node_ids": changed})

    def _store_test_data(self, command: Command) -> CommandResult:
        stored = self.cluster.store(TEST_OBJECT_ID, TEST_PAYLOAD)
        placement = {str(fid): node_id for fid, node_id in stored.placement.items()}
        return CommandResult(
            command,
            True,
            f"stored {stored.original_length} bytes as {stored.total_fragments} fragments",
            {"object_id": stored.object_id, "placement": placement},
        )

    def _retrieve_test_data(self, command: Command) -> CommandResult:
        if TEST_OBJECT_ID not in self.cluster.objects:
            return CommandResult(command, False, "no test data stored")
        report = self.coordinator.attempt(self.cluster.get_object(TEST_OBJECT_ID), self.cluster)
        payload = {"report": report.as_dict()}
        if report.outcome is RecoveryOutcome.SUCCESS:
            payload["data"] = report.data
            return CommandResult(command, True, f"recovered {len(report.data)} bytes: {report.message}", payload)
        if report.outcome is RecoveryOutcome.UNRECOVERABLE:
            return CommandResult(command, False, f"unrecoverable under current failures: {report.error}", payload)
        return CommandResult(command, False, report.message, payload)

    def _adjust_speed(self, command: Command) -> CommandResult:
        if not math.isfinite(command.delta):
            raise InvalidConfiguration(f"speed delta must be finite (got {command.delta})")
        self.speed = min(MAX_SPEED, max(MIN_SPEED, round(self.speed + command.delta, 3)))
        return CommandResult(command, True, f"speed {self.speed:.1f}x", {"speed": self.speed})

    def _quit(self, command: Command) -> CommandResult:
        self.state = LoopState.STOPPED
        self.clock.clear()
        self._pending.clear()
        return CommandResult(command, True, "simulation stopped")

    # Timed auto-actions -------------------------------------------------
    def _schedule_auto_actions(self) -> None:
        interval = self.config.auto_failure_interval
        if self.config.demo == "stress":
            self.clock.schedule_in(interval, self._stress_step, label="cascade-failure")
        elif self.config.demo == "partition":
            self.clock.schedule_in(interval, self._partition_step, label="partition")
            self.clock.schedule_in(interval * 3, self._heal_step, label="heal-partition")

    def _stress_step(self) -> None:
        self._stress_steps += 1
        if self._stress_steps % 2 == 0:
            self.cluster.apply_failure(self.failures.degrade(self.cluster))
        self.cluster.apply_failure(self.failures.generate(FailurePattern.CASCADE, self.cluster))
        if self.cluster.node_ids(NodeState.HEALTHY):
            self.clock.schedule_in(self.config.auto_failure_interval, self._stress_step, label="cascade-failure")

    def _partition_step(self) -> None:
        self.cluster.apply_failure(self.failures.generate(FailurePattern.PARTITION, self.cluster))

    def _heal_step(self) -> None:
        self.cluster.set_all_node_states(NodeState.HEALTHY)
        self._record_event({"type": "partition_healed"})
