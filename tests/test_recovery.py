from dataclasses import replace

import pytest

from ecsim.clock import EventClock
from ecsim.cluster import Cluster
from ecsim.errors import ChecksumMismatch, InsufficientChunks
from ecsim.models import FragmentId, FragmentKind, NodeState
from ecsim.recovery import RecoveryCoordinator, RecoveryOutcome, RecoveryStats, RecoveryStrategy

PAYLOAD = b"sixteen byte msg"


def _setup():
    coordinator = RecoveryCoordinator()
    cluster = Cluster(6, 4, 2, coordinator=coordinator)
    stored = cluster.store("obj", PAYLOAD)
    return coordinator, cluster, stored


def test_successful_attempt_reports_rebuilt_fragment():
    coordinator, cluster, stored = _setup()
    cluster.fail_node(stored.node_for(FragmentId(FragmentKind.DATA, 0)))
    report = coordinator.attempt(stored, cluster)
    assert report.ok
    assert report.data == PAYLOAD
    assert str(report.rebuilt) == "D0"
    assert [str(fid) for fid in report.fragments_used] == ["D1", "D2", "D3", "P0"]
    assert report.as_dict()["missing"] == ["D0"]


def test_unrecoverable_attempt_is_classified_not_raised(caplog):
    coordinator, cluster, stored = _setup()
    cluster.fail_node(stored.node_for(FragmentId(FragmentKind.DATA, 1)))
    cluster.fail_node(stored.node_for(FragmentId(FragmentKind.DATA, 3)))
    with caplog.at_level("WARNING", logger="ecsim.recovery"):
        report = coordinator.attempt(stored, cluster)
    assert report.outcome is RecoveryOutcome.UNRECOVERABLE
    assert report.data is None
    assert isinstance(report.error, InsufficientChunks)
    assert "unrecoverable" in caplog.text

    with pytest.raises(InsufficientChunks):
        coordinator.recover(stored, cluster)


def test_checksum_mismatch_is_classified_as_corrupted(caplog):
    coordinator, cluster, stored = _setup()
    tampered = replace(stored, checksum="0" * 64)
    with caplog.at_level("ERROR", logger="ecsim.recovery"):
        report = coordinator.attempt(tampered, cluster)
    assert report.outcome is RecoveryOutcome.CORRUPTED
    assert "Checksum mismatch" in caplog.text
    with pytest.raises(ChecksumMismatch):
        coordinator.recover(tampered, cluster)


def test_stats_accumulate_per_outcome():
    coordinator, cluster, stored = _setup()
    assert coordinator.stats.success_rate == 100.0
    coordinator.attempt(stored, cluster)
    cluster.fail_node(0)
    cluster.fail_node(1)
    coordinator.attempt(stored, cluster)
    stats = coordinator.stats
    assert (stats.successful, stats.unrecoverable, stats.total_attempts) == (1, 1, 2)
    assert stats.success_rate == pytest.approx(50.0)
    stats.reset()
    assert stats.total_attempts == 0


def test_empty_stats_dict():
    assert RecoveryStats().as_dict() == {
        "successful": 0,
        "unrecoverable": 0,
        "corrupted": 0,
        "total_attempts": 0,
        "success_rate": 100.0,
    }


def test_plan_for_a_recoverable_cluster_is_gradual():
    coordinator = RecoveryCoordinator()
    cluster = Cluster(6, 4, 2, coordinator=coordinator)
    cluster.fail_node(4)
    cluster.fail_node(2)
    plan = coordinator.plan_recovery(cluster)
    assert [step.node_id for step in plan] == [2, 4]
    assert [step.delay for step in plan] == [pytest.approx(1.0), pytest.approx(3.0)]
    assert {step.strategy for step in plan} == {RecoveryStrategy.GRADUAL_RECOVERY}


def test_plan_for_a_critical_cluster_restarts_immediately():
    coordinator, cluster, stored = _setup()
    lost = sorted(stored.node_for(FragmentId(FragmentKind.DATA, index)) for index in (0, 2))
    for node_id in lost:
        cluster.fail_node(node_id)
    assert cluster.health().is_critical
    plan = coordinator.plan_recovery(cluster)
    assert [step.node_id for step in plan] == lost
    assert [step.delay for step in plan] == [pytest.approx(1.0), pytest.approx(1.1)]
    assert str(plan[0].strategy) == "Immediate Restart"


def test_plan_can_be_limited_to_given_nodes():
    coordinator, cluster, _ = _setup()
    cluster.fail_node(1)
    cluster.fail_node(5)
    plan = coordinator.plan_recovery(cluster, [5])
    assert [step.node_id for step in plan] == [5]
    assert coordinator.plan_recovery(Cluster(6, 4, 2)) == []


def test_scheduled_plan_recovers_nodes_as_the_clock_advances(caplog):
    coordinator, cluster, stored = _setup()
    for node_id in (0, 3):
        cluster.fail_node(node_id)
    clock = EventClock()
    plan = coordinator.plan_recovery(cluster)
    with caplog.at_level("INFO", logger="ecsim.recovery"):
        assert coordinator.schedule_recovery(plan, cluster, clock) == 2
    assert clock.pending == ["recover-0", "recover-3"]

    clock.advance(plan[0].delay)
    assert cluster.node(0).state is NodeState.HEALTHY
    clock.advance(plan[-1].delay)
    assert cluster.node_ids(NodeState.FAILED) == []
    assert cluster.retrieve(stored.object_id) == PAYLOAD
    assert "Scheduled 2 node recoveries" in caplog.text


def test_recovery_time_estimate_allows_for_parallel_work():
    assert RecoveryCoordinator.estimate_recovery_time(2) == pytest.approx(42.0)
    assert RecoveryCoordinator.estimate_recovery_time(0) == 0.0
    assert RecoveryCoordinator.estimate_recovery_time(-1) == 0.0
