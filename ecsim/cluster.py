from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import coder
from .config import SimulationConfig
from .errors import InvalidConfiguration, UnknownNode, UnknownObject
from .models import FailureEvent, Fragment, FragmentKind, NodeState, StoredObject
from .node import StorageNode
from .recovery import RecoveryCoordinator

logger = logging.getLogger(__name__)


@dataclass
class NodeSnapshot:
    node_id: int
    state: NodeState
    health_score: int
    latency_ms: int
    hosted_fragment_ids: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "state": self.state.value,
            "health_score": self.health_score,
            "latency_ms": self.latency_ms,
            "hosted_fragment_ids": list(self.hosted_fragment_ids),
        }


@dataclass
class ClusterSnapshot:
    nodes: List[NodeSnapshot]
    data_chunks: int
    parity_chunks: int
    failure_tolerance: int
    can_recover: bool
    total_fragments: int
    total_bytes: int
    storage_overhead: float
    objects: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [node.as_dict() for node in self.nodes],
            "data_chunks": self.data_chunks,
            "parity_chunks": self.parity_chunks,
            "failure_tolerance": self.failure_tolerance,
            "can_recover": self.can_recover,
            "total_fragments": self.total_fragments,
            "total_bytes": self.total_bytes,
            "storage_overhead": self.storage_overhead,
            "objects": list(self.objects),
        }


@dataclass
class ClusterHealth:
    total_nodes: int
    healthy_nodes: int
    degraded_nodes: int
    failed_nodes: int
    can_recover: bool
    failure_tolerance: int

    @property
    def health_percentage(self) -> float:
        if self.total_nodes == 0:
            return 100.0
        return self.healthy_nodes / self.total_nodes * 100.0

    @property
    def description(self) -> str:
        pct = self.health_percentage
        if pct >= 90.0:
            return "Excellent"
        if pct >= 70.0:
            return "Good"
        if pct >= 50.0:
            return "Fair"
        if pct >= 30.0:
            return "Poor"
        return "Critical"

    @property
    def is_critical(self) -> bool:
        return not self.can_recover or self.failure_tolerance == 0


class Cluster:
    """Owns the storage nodes and every stored object's fragment placement.

    ``set_node_state`` is the single path through which node state changes.
    """

    def __init__(
        self,
        node_count: int,
        data_chunks: int,
        parity_chunks: int,
        *,
        coordinator: Optional[RecoveryCoordinator] = None,
    ):
        coder.validate_counts(data_chunks, parity_chunks)
        if node_count < data_chunks + parity_chunks:
            raise InvalidConfiguration(
                f"Not enough nodes: need {data_chunks + parity_chunks}, have {node_count}"
            )
        self.data_chunks = data_chunks
        self.parity_chunks = parity_chunks
        self.nodes: List[StorageNode] = [StorageNode(node_id) for node_id in range(node_count)]
        self.objects: Dict[str, StoredObject] = {}
        self.coordinator = coordinator or RecoveryCoordinator()
        self._observers: List[Callable[[Dict[str, Any]], None]] = []
        self._stores = 0

    @classmethod
    def from_config(cls, config: SimulationConfig, coordinator: Optional[RecoveryCoordinator] = None) -> "Cluster":
        config.validate()
        return cls(config.nodes, config.data_chunks, config.parity_chunks, coordinator=coordinator)

    # Observers ------------------------------------------------------------
    def register_observer(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        if callback not in self._observers:
            self._observers.append(callback)

    def _emit_event(self, event_type: str, **payload: Any) -> None:
        event = {"type": event_type, **payload}
        for observer in self._observers:
            observer(event)

    # Lookup ---------------------------------------------------------------
    def node(self, node_id: int) -> StorageNode:
        if not 0 <= node_id < len(self.nodes):
            raise UnknownNode(f"Node {node_id} not found")
        return self.nodes[node_id]

    def get_object(self, object_id: str) -> StoredObject:
        try:
            return self.objects[object_id]
        except KeyError:
            raise UnknownObject(f"Object '{object_id}' is not stored") from None

    def node_ids(self, state: Optional[NodeState] = None) -> List[int]:
        return [node.node_id for node in self.nodes if state is None or node.state is state]

    # Node state -----------------------------------------------------------
    def set_node_state(self, node_id: int, state: NodeState) -> bool:
        node = self.node(node_id)
        previous = node.state
        if not node._transition(state):
            return False
        logger.info("Node %s %s -> %s", node_id, previous, state)
        self._emit_event("node_state_changed", node_id=node_id, previous=previous.value, state=state.value)
        return True

    def fail_node(self, node_id: int) -> bool:
        return self.set_node_state(node_id, NodeState.FAILED)

    def recover_node(self, node_id: int) -> bool:
        return self.set_node_state(node_id, NodeState.HEALTHY)

    def degrade_node(self, node_id: int) -> bool:
        return self.set_node_state(node_id, NodeState.DEGRADED)

    def set_all_node_states(self, state: NodeState) -> List[int]:
        return [node.node_id for node in self.nodes if self.set_node_state(node.node_id, state)]

    def apply_failure(self, event: FailureEvent) -> List[int]:
        changed = [
            node_id
            for node_id in sorted(event.affected_node_ids)
            if self.set_node_state(node_id, event.target_state)
        ]
        if changed:
            self._emit_event(
                "failure_injected",
                pattern=event.pattern.value,
                node_ids=changed,
                state=event.target_state.value,
                failure_type=event.failure_type.value,
            )
        return changed

    # Objects --------------------------------------------------------------
    def store(self, object_id: str, data: bytes) -> StoredObject:
        """Encode ``data`` and place each fragment on its own node, round-robin."""
        if object_id in self.objects:
            self._drop_fragments(object_id)

        fragments = coder.encode(data, self.data_chunks, self.parity_chunks, object_id=object_id)
        offset = self._stores % len(self.nodes)
        self._stores += 1

        placement = {}
        for position, fragment in enumerate(fragments):
            node = self.nodes[(offset + position) % len(self.nodes)]
            placed = replace(fragment, owner_node=node.node_id)
            placement[placed.fragment_id] = node.node_id
            if node.is_available:
                node.store_fragment(placed)
                continue
            logger.warning(
                "Node %s is failed; fragment %s of %s was not written",
                node.node_id,
                placed.fragment_id,
                object_id,
            )
            self._emit_event(
                "fragment_skipped", object_id=object_id, fragment=str(placed.fragment_id), node_id=node.node_id
            )

        stored = StoredObject(
            object_id=object_id,
            original_length=len(data),
            checksum=coder.checksum(bytes(data)),
            data_chunks=self.data_chunks,
            parity_chunks=self.parity_chunks,
            fragment_layout=tuple(fragment.fragment_id for fragment in fragments),
            placement=placement,
        )
        self.objects[object_id] = stored
        logger.info("Stored %s (%d bytes) as %d fragments", object_id, len(data), len(fragments))
        self._emit_event("object_stored", object_id=object_id, size=len(data), fragments=len(fragments))
        return stored

    def retrieve(self, object_id: str) -> bytes:
        return self.coordinator.recover(self.get_object(object_id), self)

    def delete(self, object_id: str) -> bool:
        if object_id not in self.objects:
            return False
        self._drop_fragments(object_id)
        del self.objects[object_id]
        self._emit_event("object_deleted", object_id=object_id)
        return True

    def _drop_fragments(self, object_id: str) -> None:
        for node in self.nodes:
            node.drop_object(object_id)

    def available_fragments(self, object_id: str) -> List[Fragment]:
        stored = self.get_object(object_id)
        available = []
        for fragment_id in stored.fragment_layout:
            fragment = self.nodes[stored.placement[fragment_id]].read_fragment(object_id, fragment_id)
            if fragment is not None:
                available.append(fragment)
        return available

    # Derived health -------------------------------------------------------
    def _loss(self, stored: StoredObject) -> Tuple[int, int]:
        """Return (missing data fragments, readable parity fragments)."""
        missing_data = 0
        readable_parity = 0
        for fragment_id, node_id in stored.placement.items():
            readable = self.nodes[node_id].holds(stored.object_id, fragment_id)
            if fragment_id.kind is FragmentKind.DATA and not readable:
                missing_data += 1
            elif fragment_id.kind is FragmentKind.PARITY and readable:
                readable_parity += 1
        return missing_data, readable_parity

    def _object_tolerance(self, stored: StoredObject) -> int:
        if stored.parity_chunks < 1:
            return 0
        missing_data, readable_parity = self._loss(stored)
        if readable_parity == 0 or missing_data >= min(2, stored.data_chunks):
            return 0
        return 1

    def failure_tolerance(self, object_id: Optional[str] = None) -> int:
        if object_id is not None:
            return self._object_tolerance(self.get_object(object_id))
        if not self.objects:
            return 1 if self.parity_chunks >= 1 else 0
        return min(self._object_tolerance(stored) for stored in self.objects.values())

    def can_recover(self, object_id: Optional[str] = None) -> bool:
        if object_id is not None:
            return coder.can_reconstruct(*self._loss(self.get_object(object_id)))
        return all(coder.can_reconstruct(*self._loss(stored)) for stored in self.objects.values())

    def storage_overhead(self) -> float:
        return coder.storage_overhead(self.data_chunks, self.parity_chunks)

    def health(self) -> ClusterHealth:
        counts = {state: 0 for state in NodeState}
        for node in self.nodes:
            counts[node.state] += 1
        return ClusterHealth(
            total_nodes=len(self.nodes),
            healthy_nodes=counts[NodeState.HEALTHY],
            degraded_nodes=counts[NodeState.DEGRADED],
            failed_nodes=counts[NodeState.FAILED],
            can_recover=self.can_recover(),
            failure_tolerance=self.failure_tolerance(),
        )

    def snapshot(self) -> ClusterSnapshot:
        nodes = [
            NodeSnapshot(
                node_id=node.node_id,
                state=node.state,
                health_score=node.health_score,
                latency_ms=node.latency_ms,
                hosted_fragment_ids=node.hosted_fragment_ids(),
            )
            for node in self.nodes
        ]
        return ClusterSnapshot(
            nodes=nodes,
            data_chunks=self.data_chunks,
            parity_chunks=self.parity_chunks,
            failure_tolerance=self.failure_tolerance(),
            can_recover=self.can_recover(),
            total_fragments=sum(node.stats.fragments for node in self.nodes),
            total_bytes=sum(node.stats.bytes_stored for node in self.nodes),
            storage_overhead=self.storage_overhead(),
            objects=sorted(self.objects),
        )
