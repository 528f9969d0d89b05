"""Erasure-coded storage cluster simulator."""

from .cluster import Cluster, ClusterHealth, ClusterSnapshot, NodeSnapshot
from .config import SimulationConfig
from .errors import (
    ChecksumMismatch,
    ErasureSimError,
    InsufficientChunks,
    InvalidConfiguration,
    NodeUnavailable,
    UnknownNode,
    UnknownObject,
)
from .failures import FailureGenerator
from .models import FailureEvent, FailurePattern, FailureType, Fragment, FragmentId, FragmentKind, NodeState, StoredObject
from .node import StorageNode
from .recovery import (
    RecoveryCoordinator,
    RecoveryOutcome,
    RecoveryReport,
    RecoveryStats,
    RecoveryStep,
    RecoveryStrategy,
)
from .simulation import Command, CommandResult, CommandType, LoopState, SimulationLoop, SimulationSnapshot

__all__ = [
    "ChecksumMismatch",
    "Cluster",
    "ClusterHealth",
    "ClusterSnapshot",
    "Command",
    "CommandResult",
    "CommandType",
    "ErasureSimError",
    "FailureEvent",
    "FailureGenerator",
    "FailurePattern",
    "FailureType",
    "Fragment",
    "FragmentId",
    "FragmentKind",
    "InsufficientChunks",
    "InvalidConfiguration",
    "LoopState",
    "NodeSnapshot",
    "NodeState",
    "NodeUnavailable",
    "RecoveryCoordinator",
    "RecoveryOutcome",
    "RecoveryReport",
    "RecoveryStats",
    "RecoveryStep",
    "RecoveryStrategy",
    "SimulationConfig",
    "SimulationLoop",
    "SimulationSnapshot",
    "StorageNode",
    "StoredObject",
    "UnknownNode",
    "UnknownObject",
]
