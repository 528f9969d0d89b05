import json

import pytest

from ecsim.config import SimulationConfig
from ecsim.scenarios import (
    SCENARIOS,
    run_all_scenarios,
    run_basic_demo,
    run_educational_demo,
    run_headless_demo,
    run_partition_demo,
    run_performance_demo,
    run_recovery_demo,
    run_scenario,
    run_stress_demo,
)

CONFIG = SimulationConfig(seed=21)


def test_basic_demo_survives_a_single_failure():
    summary = run_basic_demo(CONFIG)
    assert summary["scenario"] == "basic"
    assert summary["outcome"] == "success"
    assert summary["snapshot"]["health"]["failed_nodes"] == 0
    assert summary["events"], "expected node events to be captured"


def test_stress_demo_reports_recoverable_pieces():
    summary = run_stress_demo(CONFIG)
    assert summary["cascade_depth"] == 2
    assert 0 <= summary["recoverable"] <= 5
    assert summary["snapshot"]["health"]["healthy_nodes"] == 6


def test_partition_demo_heals_and_verifies():
    summary = run_partition_demo(CONFIG)
    assert len(summary["isolated"]) == 3
    assert summary["after"] == "success"
    assert summary["during"] in {"success", "unrecoverable"}


def test_recovery_demo_recovers_every_failed_node():
    summary = run_recovery_demo(CONFIG)
    assert summary["snapshot"]["health"]["failed_nodes"] == 0
    assert summary["log"][-1].endswith("all nodes recovered")
    assert summary["strategy"] in {"immediate_restart", "gradual_recovery", None}
    assert len(summary["plan"]) == summary["failed_nodes"]
    assert [step["delay"] for step in summary["plan"]] == sorted(step["delay"] for step in summary["plan"])


def test_recovery_demo_restarts_a_lost_cluster_immediately():
    summary = run_recovery_demo(CONFIG, failure_rate=1.0)
    assert summary["failed_nodes"] == 6
    assert summary["strategy"] == "immediate_restart"
    assert [step["node_id"] for step in summary["plan"]] == list(range(6))
    assert any(line.startswith("FAIL system cannot serve data") for line in summary["log"])
    assert summary["snapshot"]["health"]["healthy_nodes"] == 6


def test_performance_demo_stops_at_the_tolerance_limit():
    summary = run_performance_demo(CONFIG)
    assert 0 <= summary["failures_survived"] <= 3
    assert "overhead 1.50x" in summary["log"][2]
    assert summary["snapshot"]["health"]["healthy_nodes"] == 6


def test_educational_demo_lists_placement():
    summary = run_educational_demo(CONFIG)
    assert summary["outcome"] == "success"
    assert any(line.strip().startswith("D0 -> node") for line in summary["log"])


def test_headless_demo_stops_once_unrecoverable():
    summary = run_headless_demo(CONFIG)
    steps = summary["steps"]
    assert steps[0]["outcome"] == "success"
    assert len(steps) <= 3
    unrecoverable = [step for step in steps if step["outcome"] == "unrecoverable"]
    assert not unrecoverable or steps[-1] is unrecoverable[0]


def test_every_scenario_summary_is_json_serialisable():
    summaries = run_all_scenarios(CONFIG)
    assert set(summaries) == set(SCENARIOS)
    json.dumps(summaries)


def test_run_scenario_validates_names():
    with pytest.raises(ValueError):
        run_scenario("invalid")
