from __future__ import annotations

from typing import Callable, Dict, List, Optional

from .config import SimulationConfig
from .failures import estimate_repair_time
from .models import FailureEvent, FailurePattern, NodeState
from .recovery import RecoveryOutcome
from .simulation import SimulationLoop


class DemoResult(dict):
    """Typed dict wrapper for scenario summaries."""


def _make_event_logger(event_log: List[str], limit: int) -> Callable[[Dict[str, object]], None]:
    def _logger(event: Dict[str, object]) -> None:
        if len(event_log) >= limit:
            return
        event_type = event.get("type", "unknown")
        details = {k: v for k, v in event.items() if k not in {"type", "time"}}
        event_log.append(f"{event_type} {details}")

    return _logger


def _build_loop(config: Optional[SimulationConfig], demo: str, events: List[str], event_limit: int) -> SimulationLoop:
    config = (config or SimulationConfig()).with_overrides(demo=demo)
    loop = SimulationLoop(config)
    loop.cluster.register_observer(_make_event_logger(events, event_limit))
    return loop


def _check(loop: SimulationLoop, object_id: str, expected: bytes) -> RecoveryOutcome:
    report = loop.coordinator.attempt(loop.cluster.get_object(object_id), loop.cluster)
    if report.ok and report.data != expected:
        return RecoveryOutcome.CORRUPTED
    return report.outcome


def _fail_one(loop: SimulationLoop, pattern: FailurePattern = FailurePattern.RANDOM) -> List[int]:
    return loop.cluster.apply_failure(loop.failures.generate(pattern, loop.cluster))


def _recover_one(loop: SimulationLoop) -> Optional[int]:
    node_id = loop.failures.pick_failed_node(loop.cluster)
    if node_id is not None:
        loop.cluster.recover_node(node_id)
    return node_id


def _summary(name: str, loop: SimulationLoop, log: List[str], events: List[str], **extra) -> DemoResult:
    return DemoResult(scenario=name, log=log, events=events, snapshot=loop.snapshot().as_dict(), **extra)


def run_basic_demo(config: Optional[SimulationConfig] = None, event_limit: int = 50) -> DemoResult:
    events: List[str] = []
    loop = _build_loop(config, "basic", events, event_limit)
    log = ["=== Basic Erasure Coding Demo ==="]

    payload = b"Hello, World! This is a test of erasure coding."
    loop.cluster.store("basic_demo", payload)
    log.append("OK   test data stored across cluster")

    failed = _fail_one(loop)
    log.append(f"WARN node {failed[0]} failed")

    outcome = _check(loop, "basic_demo", payload)
    if outcome is RecoveryOutcome.SUCCESS:
        log.append("OK   data recovered despite node failure")
    elif outcome is RecoveryOutcome.UNRECOVERABLE:
        log.append("FAIL data recovery failed: too many fragments lost")
    else:
        log.append("FAIL data corrupted during recovery")

    recovered = _recover_one(loop)
    log.append(f"OK   node {recovered} recovered")
    return _summary("basic", loop, log, events, outcome=outcome.value)


def run_stress_demo(config: Optional[SimulationConfig] = None, event_limit: int = 50) -> DemoResult:
    events: List[str] = []
    loop = _build_loop(config, "stress", events, event_limit)
    log = ["=== Stress Test Demo ==="]

    pieces = {f"stress_test_{i}": f"Test data piece {i}".encode() for i in range(5)}
    for object_id, payload in pieces.items():
        loop.cluster.store(object_id, payload)
    log.append(f"OK   {len(pieces)} data pieces stored")

    failure_count = max(1, len(loop.cluster.nodes) // 3)
    for _ in range(failure_count):
        _fail_one(loop, FailurePattern.CASCADE)
    log.append(f"WARN {loop.failures.cascade_depth} node(s) failed in cascade")

    recoverable = sum(
        1 for object_id, payload in pieces.items() if _check(loop, object_id, payload) is RecoveryOutcome.SUCCESS
    )
    log.append(f"OK   {recoverable}/{len(pieces)} data pieces still recoverable after failures")

    while _recover_one(loop) is not None:
        log.append("OK   node recovered")
    return _summary(
        "stress", loop, log, events, cascade_depth=loop.failures.cascade_depth, recoverable=recoverable
    )


def run_partition_demo(config: Optional[SimulationConfig] = None, event_limit: int = 50) -> DemoResult:
    events: List[str] = []
    loop = _build_loop(config, "partition", events, event_limit)
    log = ["=== Network Partition Demo ==="]

    payload = b"Network partition test data"
    loop.cluster.store("partition_test", payload)
    log.append("OK   data stored before partition")

    isolated = _fail_one(loop, FailurePattern.PARTITION)
    log.append(f"WARN network partition: {len(isolated)} node(s) isolated {isolated}")

    during = _check(loop, "partition_test", payload)
    if during is RecoveryOutcome.SUCCESS:
        log.append("OK   data still available during partition")
    else:
        log.append("FAIL data unavailable during partition")

    loop.cluster.set_all_node_states(NodeState.HEALTHY)
    log.append("OK   network partition healed")
    after = _check(loop, "partition_test", payload)
    if after is RecoveryOutcome.SUCCESS:
        log.append("OK   data integrity verified after healing")
    else:
        log.append("WARN data integrity issues after healing")
    return _summary(
        "partition", loop, log, events, isolated=isolated, during=during.value, after=after.value
    )


def run_recovery_demo(
    config: Optional[SimulationConfig] = None, event_limit: int = 50, failure_rate: float = 0.3
) -> DemoResult:
    events: List[str] = []
    loop = _build_loop(config, "recovery", events, event_limit)
    log = ["=== Recovery Strategies Demo ==="]

    payload = b"Recovery strategy test data - longer message to test chunking"
    loop.cluster.store("recovery_test", payload)
    log.append("OK   test data stored")

    for node_id in loop.cluster.node_ids(NodeState.HEALTHY):
        if loop.rng.random() < failure_rate:
            failure_type = loop.failures.failure_type()
            loop.cluster.apply_failure(
                FailureEvent(FailurePattern.RANDOM, frozenset([node_id]), failure_type=failure_type)
            )
            log.append(
                f"WARN node {node_id}: {failure_type}, repair estimate {estimate_repair_time(failure_type):.0f}s"
            )
    health = loop.cluster.health()
    log.append(f"WARN random failures: {health.failed_nodes}/{health.total_nodes} nodes affected")

    if loop.cluster.can_recover():
        log.append("OK   system still operational")
        if _check(loop, "recovery_test", payload) is RecoveryOutcome.SUCCESS:
            log.append("OK   data recovered from remaining nodes")
        else:
            log.append("WARN data recovery had issues")
    else:
        log.append("FAIL system cannot serve data: too many failures")

    plan = loop.coordinator.plan_recovery(loop.cluster)
    strategy = plan[0].strategy if plan else None
    log.append(
        f"Recovery plan: {strategy or 'nothing to do'} for {len(plan)} node(s), "
        f"estimated {loop.coordinator.estimate_recovery_time(len(plan)):.0f}s of repair work"
    )
    loop.coordinator.schedule_recovery(plan, loop.cluster, loop.clock)
    for step in plan:
        loop.clock.advance(step.delay - loop.clock.now)
        state = loop.cluster.node(step.node_id).state
        log.append(f"OK   t+{step.delay:.1f}s node {step.node_id} {str(state).lower()}")
    log.append("OK   all nodes recovered")
    return _summary(
        "recovery",
        loop,
        log,
        events,
        failed_nodes=health.failed_nodes,
        strategy=strategy.value if strategy else None,
        plan=[{"node_id": step.node_id, "delay": step.delay} for step in plan],
    )


def run_performance_demo(config: Optional[SimulationConfig] = None, event_limit: int = 50) -> DemoResult:
    events: List[str] = []
    loop = _build_loop(config, "performance", events, event_limit)
    log = ["=== Performance Impact Demo ==="]

    loop.cluster.store("perf_small", b"Small")
    loop.cluster.store(
        "perf_medium", b"Medium sized data that spans multiple chunks and tests the erasure coding efficiency"
    )
    loop.cluster.store("perf_large", b"X" * 1024)
    log.append("OK   stored data of various sizes")

    snapshot = loop.cluster.snapshot()
    log.append(
        f"Storage distribution: {snapshot.total_fragments} fragments, {snapshot.total_bytes} bytes total, "
        f"overhead {snapshot.storage_overhead:.2f}x"
    )

    survived = 0
    for step in range(1, len(loop.cluster.nodes) // 2 + 1):
        _fail_one(loop)
        can_serve = loop.cluster.can_recover()
        log.append(f"After {step} failure(s): system {'CAN' if can_serve else 'CANNOT'} serve data")
        if not can_serve:
            log.append("FAIL reached fault tolerance limit")
            break
        survived = step

    loop.cluster.set_all_node_states(NodeState.HEALTHY)
    health = loop.cluster.health()
    log.append(f"OK   system recovered: {health.healthy_nodes}/{health.total_nodes} nodes healthy")
    return _summary("performance", loop, log, events, failures_survived=survived)


def run_educational_demo(config: Optional[SimulationConfig] = None, event_limit: int = 50) -> DemoResult:
    events: List[str] = []
    loop = _build_loop(config, "educational", events, event_limit)
    cluster = loop.cluster
    log = [
        "=== Educational Demo: How Erasure Coding Works ===",
        "Step 1: Understanding the setup",
        f"  cluster has {len(cluster.nodes)} nodes",
        f"  each object is split into {cluster.data_chunks} data fragments "
        f"plus {cluster.parity_chunks} parity copies",
        "  parity is the XOR of every data fragment",
    ]

    demo_text = b"ERASURE_CODING_DEMO_DATA"
    stored = cluster.store("educational", demo_text)
    log.append("Step 2: Storing data")
    for fragment_id in stored.fragment_layout:
        log.append(f"  {fragment_id} -> node {stored.node_for(fragment_id)}")

    log.append("Step 3: Simulating failure")
    failed = _fail_one(loop)
    lost = [str(fid) for fid, node_id in stored.placement.items() if node_id in failed]
    log.append(f"  node {failed[0]} failed, fragments lost: {', '.join(lost) or 'none'}")

    log.append("Step 4: Data recovery")
    report = loop.coordinator.attempt(stored, cluster)
    if report.ok and report.data == demo_text:
        log.append(f"  {report.message}")
        log.append("  original data recovered")
    else:
        log.append("  recovery failed: too many fragments lost")

    log.append("Step 5: Node recovery")
    _recover_one(loop)
    log.append("  failed node brought back online")
    log.append(
        f"Takeaway: the scheme survives one lost data fragment at a storage overhead of "
        f"{cluster.storage_overhead():.2f}x"
    )
    return _summary("educational", loop, log, events, outcome=report.outcome.value)


def run_headless_demo(config: Optional[SimulationConfig] = None, event_limit: int = 50) -> DemoResult:
    """Store a payload, then fail nodes one at a time until it can no longer be read."""
    events: List[str] = []
    config = config or SimulationConfig()
    loop = SimulationLoop(config.with_overrides(headless=True))
    loop.cluster.register_observer(_make_event_logger(events, event_limit))
    log = ["Running in headless mode"]

    payload = b"Headless demo test data for erasure coding validation"
    loop.cluster.store("headless_test", payload)
    health = loop.cluster.health()
    log.append(f"Initial state: {health.healthy_nodes}/{health.total_nodes} nodes healthy")

    steps = []
    for step in range(1, health.total_nodes // 2 + 1):
        _fail_one(loop)
        current = loop.cluster.health()
        outcome = _check(loop, "headless_test", payload)
        steps.append({"failures": step, "healthy_nodes": current.healthy_nodes, "outcome": outcome.value})
        log.append(
            f"Failure {step}: {current.healthy_nodes}/{current.total_nodes} nodes healthy, "
            f"can recover: {current.can_recover}, read {outcome.value}"
        )
        if outcome is RecoveryOutcome.UNRECOVERABLE:
            break
    return _summary("headless", loop, log, events, steps=steps)


SCENARIOS = {
    "educational": run_educational_demo,
    "basic": run_basic_demo,
    "stress": run_stress_demo,
    "partition": run_partition_demo,
    "performance": run_performance_demo,
    "recovery": run_recovery_demo,
}


def run_scenario(name: str, config: Optional[SimulationConfig] = None) -> DemoResult:
    try:
        runner = SCENARIOS[name]
    except KeyError:
        raise ValueError(f"Unknown scenario '{name}'. Available: {', '.join(sorted(SCENARIOS))}") from None
    return runner(config)


def run_all_scenarios(config: Optional[SimulationConfig] = None) -> Dict[str, DemoResult]:
    return {name: runner(config) for name, runner in SCENARIOS.items()}
