from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .errors import NodeUnavailable
from .models import Fragment, FragmentId, NodeState

logger = logging.getLogger(__name__)

FragmentKey = Tuple[str, FragmentId]

# Reverse edges are only taken by explicit recovery; anything not listed is a no-op.
TRANSITIONS: Dict[NodeState, Tuple[NodeState, ...]] = {
    NodeState.HEALTHY: (NodeState.DEGRADED, NodeState.FAILED),
    NodeState.DEGRADED: (NodeState.FAILED, NodeState.HEALTHY),
    NodeState.FAILED: (NodeState.HEALTHY,),
}

HEALTH_SCORES = {
    NodeState.HEALTHY: 100,
    NodeState.DEGRADED: 60,
    NodeState.FAILED: 0,
}

LATENCY_MS = {
    NodeState.HEALTHY: 10,
    NodeState.DEGRADED: 100,
    NodeState.FAILED: 0,
}


@dataclass
class NodeStats:
    reads: int = 0
    writes: int = 0
    fragments: int = 0
    bytes_stored: int = 0


def can_transition(current: NodeState, target: NodeState) -> bool:
    return target in TRANSITIONS[current]


class StorageNode:
    """One emulated storage location.

    Node state is changed only through the owning Cluster; the node itself just
    enforces the transition table.
    """

    def __init__(self, node_id: int, state: NodeState = NodeState.HEALTHY):
        self.node_id = node_id
        self._state = state
        self._fragments: Dict[FragmentKey, Fragment] = {}
        self.stats = NodeStats()

    def __repr__(self) -> str:
        return f"StorageNode(id={self.node_id}, state={self._state.name}, fragments={len(self._fragments)})"

    @property
    def state(self) -> NodeState:
        return self._state

    @property
    def health_score(self) -> int:
        return HEALTH_SCORES[self._state]

    @property
    def latency_ms(self) -> int:
        return LATENCY_MS[self._state]

    @property
    def is_available(self) -> bool:
        return self._state is not NodeState.FAILED

    def _transition(self, target: NodeState) -> bool:
        if target is self._state or not can_transition(self._state, target):
            return False
        logger.debug("node %s: %s -> %s", self.node_id, self._state.name, target.name)
        self._state = target
        return True

    # Fragment storage ----------------------------------------------------
    def store_fragment(self, fragment: Fragment) -> None:
        if not self.is_available:
            raise NodeUnavailable(f"node {self.node_id} is failed and cannot store {fragment.fragment_id}")
        key = (fragment.object_id, fragment.fragment_id)
        previous = self._fragments.get(key)
        if previous is not None:
            self.stats.bytes_stored -= previous.size
            self.stats.fragments -= 1
        self._fragments[key] = fragment
        self.stats.writes += 1
        self.stats.fragments += 1
        self.stats.bytes_stored += fragment.size

    def read_fragment(self, object_id: str, fragment_id: FragmentId) -> Optional[Fragment]:
        if not self.is_available:
            return None
        fragment = self._fragments.get((object_id, fragment_id))
        if fragment is not None:
            self.stats.reads += 1
        return fragment

    def drop_object(self, object_id: str) -> int:
        keys = [key for key in self._fragments if key[0] == object_id]
        for key in keys:
            fragment = self._fragments.pop(key)
            self.stats.fragments -= 1
            self.stats.bytes_stored -= fragment.size
        return len(keys)

    def holds(self, object_id: str, fragment_id: FragmentId) -> bool:
        """Readable-presence check that does not count as a read."""
        return self.is_available and (object_id, fragment_id) in self._fragments

    def hosted_fragment_ids(self) -> List[str]:
        return [f"{object_id}:{fragment_id}" for object_id, fragment_id in self._fragments]
