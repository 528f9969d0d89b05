from __future__ import annotations

import cmd
import shlex
from typing import List, Optional

from .errors import InvalidConfiguration
from .simulation import Command, CommandResult, CommandType, SimulationLoop

SPEED_STEP = 0.5

KEY_BINDINGS = {
    "s": "start",
    " ": "pause",
    "x": "reset",
    "f": "fail",
    "r": "recover",
    "a": "failall",
    "c": "recoverall",
    "d": "store",
    "g": "retrieve",
    "+": f"speed {SPEED_STEP}",
    "=": f"speed {SPEED_STEP}",
    "-": f"speed -{SPEED_STEP}",
    "_": f"speed -{SPEED_STEP}",
    "h": "help",
    "q": "quit",
    "\x1b": "quit",
}


class SimulationShell(cmd.Cmd):
    intro = "Erasure coding simulator. Type 'help' for commands or 'h' for key bindings."
    prompt = "ecsim> "

    def __init__(self, loop: Optional[SimulationLoop] = None, stdin=None, stdout=None):
        super().__init__(stdin=stdin, stdout=stdout)
        if stdin is not None:
            self.use_rawinput = False
        self.loop = loop or SimulationLoop()

    # Helpers ------------------------------------------------------------
    def _print(self, message: str) -> None:
        self.stdout.write(message + "\n")

    def _parse(self, arg: str) -> List[str]:
        try:
            return shlex.split(arg)
        except ValueError as exc:
            self._print(f"Parse error: {exc}")
            return []

    def _run(self, command: Command) -> CommandResult:
        result = self.loop.execute(command)
        marker = "ok" if result.ok else "!!"
        self._print(f"[{marker}] {result.message}")
        return result

    def precmd(self, line: str) -> str:
        return KEY_BINDINGS.get(line, line)

    def emptyline(self) -> bool:
        return False

    def default(self, line: str) -> None:
        self._print(f"Unknown command '{line.strip()}'. Type 'help' for commands.")

    # Lifecycle ----------------------------------------------------------
    def do_start(self, arg: str) -> None:  # pylint: disable=unused-argument
        """start -- start the simulation (auto-failures run for stress and partition demos)"""
        self._run(Command(CommandType.START))

    def do_pause(self, arg: str) -> None:  # pylint: disable=unused-argument
        """pause -- pause or resume the simulation"""
        self._run(Command(CommandType.PAUSE))

    def do_reset(self, arg: str) -> None:  # pylint: disable=unused-argument
        """reset -- rebuild the cluster with every node healthy and nothing stored"""
        self._run(Command(CommandType.RESET))

    def do_speed(self, arg: str) -> None:
        """speed DELTA -- adjust the simulation speed multiplier (clamped to 0.1..10)"""

        tokens = self._parse(arg)
        if not tokens:
            self._print(f"Speed: {self.loop.speed:.1f}x")
            return
        try:
            delta = float(tokens[0])
        except ValueError:
            self._print("Usage: speed DELTA")
            return
        self._run(Command.adjust_speed(delta))

    def do_tick(self, arg: str) -> None:
        """tick [seconds] -- advance simulated time (default one tick interval)"""

        tokens = self._parse(arg)
        elapsed = None
        if tokens:
            try:
                elapsed = float(tokens[0])
            except ValueError:
                self._print("Usage: tick [seconds]")
                return
        try:
            snapshot = self.loop.tick(elapsed)
        except InvalidConfiguration as exc:
            self._print(f"{exc}\nUsage: tick [seconds]")
            return
        self._print(f"Clock {snapshot.clock:0.2f}s ({snapshot.state.value})")

    # Failures -----------------------------------------------------------
    def do_fail(self, arg: str) -> None:  # pylint: disable=unused-argument
        """fail -- fail one random healthy node"""
        self._run(Command(CommandType.FAIL_RANDOM_NODE))

    def do_recover(self, arg: str) -> None:  # pylint: disable=unused-argument
        """recover -- bring one random failed node back online"""
        self._run(Command(CommandType.RECOVER_RANDOM_NODE))

    def do_failall(self, arg: str) -> None:  # pylint: disable=unused-argument
        """failall -- fail every node"""
        self._run(Command(CommandType.FAIL_ALL_NODES))

    def do_recoverall(self, arg: str) -> None:  # pylint: disable=unused-argument
        """recoverall -- restore every node to healthy"""
        self._run(Command(CommandType.RECOVER_ALL_NODES))

    # Data ---------------------------------------------------------------
    def do_store(self, arg: str) -> None:  # pylint: disable=unused-argument
        """store -- encode the test payload and spread it across the nodes"""

        result = self._run(Command(CommandType.STORE_TEST_DATA))
        for fragment_id, node_id in result.payload.get("placement", {}).items():
            self._print(f"  {fragment_id} -> node {node_id}")

    def do_retrieve(self, arg: str) -> None:  # pylint: disable=unused-argument
        """retrieve -- read the test payload back, rebuilding a lost fragment if possible"""

        result = self._run(Command(CommandType.RETRIEVE_TEST_DATA))
        data = result.payload.get("data")
        if data is not None:
            self._print(f"  {data.decode('utf-8', errors='replace')}")

    # Inspection ---------------------------------------------------------
    def do_status(self, arg: str) -> None:  # pylint: disable=unused-argument
        """status -- show cluster health and recovery statistics"""

        snapshot = self.loop.snapshot()
        health = snapshot.health
        cluster = snapshot.cluster
        self._print(
            f"State {snapshot.state.value}, speed {snapshot.speed:.1f}x, clock {snapshot.clock:0.2f}s"
        )
        self._print(
            f"Nodes {health.healthy_nodes} healthy / {health.degraded_nodes} degraded / "
            f"{health.failed_nodes} failed of {health.total_nodes} "
            f"({health.health_percentage:.0f}% {health.description})"
        )
        self._print(
            f"Scheme {cluster.data_chunks}+{cluster.parity_chunks}, overhead {cluster.storage_overhead:.2f}x, "
            f"failure tolerance {cluster.failure_tolerance}, "
            f"recoverable {'yes' if cluster.can_recover else 'no'}"
        )
        stats = snapshot.recovery
        self._print(
            f"Recoveries {stats['successful']}/{stats['total_attempts']} "
            f"({stats['success_rate']:.0f}% success)"
        )

    def do_nodes(self, arg: str) -> None:  # pylint: disable=unused-argument
        """nodes -- list every node with its state and hosted fragments"""

        for node in self.loop.snapshot().cluster.nodes:
            hosted = ", ".join(node.hosted_fragment_ids) or "-"
            self._print(
                f"node {node.node_id:<3} {str(node.state):9} health {node.health_score:3} "
                f"latency {node.latency_ms:3}ms  {hosted}"
            )

    def do_events(self, arg: str) -> None:
        """events [count] -- show recent events"""

        tokens = self._parse(arg)
        try:
            count = int(tokens[0]) if tokens else 10
        except ValueError:
            self._print("Usage: events [count]")
            return
        events = self.loop.recent_events(count)
        if not events:
            self._print("No events yet")
            return
        for event in events:
            event_type = event.get("type", "unknown")
            timestamp = event.get("time", 0.0)
            details = {k: v for k, v in event.items() if k not in {"type", "time"}}
            self._print(f"[{timestamp:0.2f}s] {event_type} {details}")

    def do_keys(self, arg: str) -> None:  # pylint: disable=unused-argument
        """keys -- list single-key shortcuts"""

        for key, command in KEY_BINDINGS.items():
            label = {" ": "space", "\x1b": "esc"}.get(key, key)
            self._print(f"  {label:6} {command}")

    # Exit ---------------------------------------------------------------
    def do_quit(self, arg: str) -> bool:  # pylint: disable=unused-argument
        """quit -- stop the simulation and leave the shell"""

        self._run(Command(CommandType.QUIT))
        return True

    do_exit = do_quit
    do_EOF = do_quit


def launch_shell(loop: Optional[SimulationLoop] = None) -> None:
    SimulationShell(loop).cmdloop()
