"""Data models shared by the coder, the cluster and the simulation loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, NamedTuple, Optional, Tuple


class FragmentKind(Enum):
    DATA = "D"
    PARITY = "P"


class FragmentId(NamedTuple):
    kind: FragmentKind
    index: int

    def __str__(self) -> str:
        return f"{self.kind.value}{self.index}"


@dataclass(frozen=True)
class Fragment:
    object_id: str
    index: int
    kind: FragmentKind
    payload: bytes
    owner_node: Optional[int] = None

    @property
    def fragment_id(self) -> FragmentId:
        return FragmentId(self.kind, self.index)

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass(frozen=True)
class StoredObject:
    object_id: str
    original_length: int
    checksum: str
    data_chunks: int
    parity_chunks: int
    fragment_layout: Tuple[FragmentId, ...]
    placement: Dict[FragmentId, int] = field(default_factory=dict)

    @property
    def total_fragments(self) -> int:
        return len(self.fragment_layout)

    def parity_ids(self) -> Tuple[FragmentId, ...]:
        return tuple(fid for fid in self.fragment_layout if fid.kind is FragmentKind.PARITY)

    def node_for(self, fragment_id: FragmentId) -> int:
        return self.placement[fragment_id]


class NodeState(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value.capitalize()


class FailureType(Enum):
    HARDWARE = "hardware"
    NETWORK_TIMEOUT = "network_timeout"
    DISK_FULL = "disk_full"
    POWER_OUTAGE = "power_outage"
    SOFTWARE = "software"

    def __str__(self) -> str:
        return self.value.replace("_", " ").title()


class FailurePattern(Enum):
    RANDOM = "random"
    CASCADE = "cascade"
    PARTITION = "partition"


@dataclass(frozen=True)
class FailureEvent:
    pattern: FailurePattern
    affected_node_ids: FrozenSet[int]
    target_state: NodeState = NodeState.FAILED
    failure_type: FailureType = FailureType.HARDWARE

    @property
    def is_empty(self) -> bool:
        return not self.affected_node_ids
