import pytest

from ecsim.errors import NodeUnavailable
from ecsim.models import Fragment, FragmentId, FragmentKind, NodeState
from ecsim.node import StorageNode, can_transition


def _fragment(index: int = 0, payload: bytes = b"abcd", object_id: str = "obj") -> Fragment:
    return Fragment(object_id, index, FragmentKind.DATA, payload)


def test_transition_table():
    assert can_transition(NodeState.HEALTHY, NodeState.DEGRADED)
    assert can_transition(NodeState.HEALTHY, NodeState.FAILED)
    assert can_transition(NodeState.DEGRADED, NodeState.FAILED)
    assert can_transition(NodeState.DEGRADED, NodeState.HEALTHY)
    assert can_transition(NodeState.FAILED, NodeState.HEALTHY)
    assert not can_transition(NodeState.FAILED, NodeState.DEGRADED)


def test_invalid_or_repeated_transitions_are_noops():
    node = StorageNode(0)
    assert not node._transition(NodeState.HEALTHY)
    assert node._transition(NodeState.FAILED)
    assert not node._transition(NodeState.DEGRADED)
    assert node.state is NodeState.FAILED


def test_health_and_latency_follow_state():
    node = StorageNode(3)
    assert (node.health_score, node.latency_ms) == (100, 10)
    node._transition(NodeState.DEGRADED)
    assert (node.health_score, node.latency_ms) == (60, 100)
    node._transition(NodeState.FAILED)
    assert (node.health_score, node.latency_ms) == (0, 0)
    assert str(node.state) == "Failed"


def test_failed_node_keeps_fragments_but_serves_nothing():
    node = StorageNode(1)
    fragment = _fragment()
    node.store_fragment(fragment)
    node._transition(NodeState.FAILED)

    assert node.read_fragment("obj", fragment.fragment_id) is None
    assert not node.holds("obj", fragment.fragment_id)

    node._transition(NodeState.HEALTHY)
    assert node.read_fragment("obj", fragment.fragment_id) == fragment
    assert node.stats.reads == 1


def test_failed_node_rejects_writes():
    node = StorageNode(2)
    node._transition(NodeState.FAILED)
    with pytest.raises(NodeUnavailable):
        node.store_fragment(_fragment())


def test_stats_track_overwrites_and_drops():
    node = StorageNode(0)
    node.store_fragment(_fragment(0, b"abcd"))
    node.store_fragment(_fragment(0, b"ab"))
    node.store_fragment(_fragment(1, b"xyz", object_id="other"))
    assert node.stats.writes == 3
    assert node.stats.fragments == 2
    assert node.stats.bytes_stored == 5
    assert sorted(node.hosted_fragment_ids()) == ["obj:D0", "other:D1"]

    assert node.drop_object("obj") == 1
    assert node.stats.fragments == 1
    assert node.stats.bytes_stored == 3
    assert not node.holds("obj", FragmentId(FragmentKind.DATA, 0))
