"""Retrieval after failures: gather survivors, rebuild, classify the outcome."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterable, List, Optional

from . import coder
from .errors import ChecksumMismatch, ErasureSimError, InsufficientChunks
from .models import FragmentId, NodeState, StoredObject

if TYPE_CHECKING:  # pragma: no cover
    from .clock import EventClock
    from .cluster import Cluster

logger = logging.getLogger(__name__)

RECOVERY_START_S = 1.0
IMMEDIATE_STAGGER_S = 0.1
GRADUAL_STAGGER_S = 2.0
NODE_RECOVERY_S = 30.0
PARALLELISM_FACTOR = 0.7


class RecoveryOutcome(Enum):
    SUCCESS = "success"
    UNRECOVERABLE = "unrecoverable"
    CORRUPTED = "corrupted"


class RecoveryStrategy(Enum):
    IMMEDIATE_RESTART = "immediate_restart"
    GRADUAL_RECOVERY = "gradual_recovery"

    def __str__(self) -> str:
        return self.value.replace("_", " ").title()


@dataclass(frozen=True)
class RecoveryStep:
    node_id: int
    delay: float
    strategy: RecoveryStrategy


@dataclass
class RecoveryReport:
    object_id: str
    outcome: RecoveryOutcome
    message: str
    data: Optional[bytes] = None
    fragments_used: List[FragmentId] = field(default_factory=list)
    missing: List[FragmentId] = field(default_factory=list)
    rebuilt: Optional[FragmentId] = None
    error: Optional[ErasureSimError] = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.outcome is RecoveryOutcome.SUCCESS

    def as_dict(self) -> dict:
        return {
            "object_id": self.object_id,
            "outcome": self.outcome.value,
            "message": self.message,
            "bytes": len(self.data) if self.data is not None else None,
            "fragments_used": [str(fid) for fid in self.fragments_used],
            "missing": [str(fid) for fid in self.missing],
            "rebuilt": str(self.rebuilt) if self.rebuilt else None,
        }


@dataclass
class RecoveryStats:
    successful: int = 0
    unrecoverable: int = 0
    corrupted: int = 0

    @property
    def total_attempts(self) -> int:
        return self.successful + self.unrecoverable + self.corrupted

    @property
    def success_rate(self) -> float:
        if self.total_attempts == 0:
            return 100.0
        return self.successful / self.total_attempts * 100.0

    def record(self, outcome: RecoveryOutcome) -> None:
        if outcome is RecoveryOutcome.SUCCESS:
            self.successful += 1
        elif outcome is RecoveryOutcome.UNRECOVERABLE:
            self.unrecoverable += 1
        else:
            self.corrupted += 1

    def reset(self) -> None:
        self.successful = self.unrecoverable = self.corrupted = 0

    def as_dict(self) -> dict:
        return {
            "successful": self.successful,
            "unrecoverable": self.unrecoverable,
            "corrupted": self.corrupted,
            "total_attempts": self.total_attempts,
            "success_rate": self.success_rate,
        }


class RecoveryCoordinator:
    """Reads fragment availability from a cluster and rebuilds objects.

    ``attempt`` never raises for expected failures; it returns a classified
    report. ``recover`` is the raising form used by ``Cluster.retrieve``.
    """

    def __init__(self) -> None:
        self.stats = RecoveryStats()
        self.last_report: Optional[RecoveryReport] = None

    def attempt(self, stored: StoredObject, cluster: "Cluster") -> RecoveryReport:
        available = cluster.available_fragments(stored.object_id)
        present = {fragment.fragment_id for fragment in available}
        missing = [fid for fid in stored.fragment_layout if fid not in present]

        try:
            plan = coder.plan_reconstruction(available, stored.data_chunks, stored.parity_chunks)
            data = coder.reconstruct(
                available,
                stored.data_chunks,
                stored.parity_chunks,
                original_length=stored.original_length,
                checksum_hex=stored.checksum,
                plan=plan,
            )
        except InsufficientChunks as exc:
            logger.warning("Object %s unrecoverable under current failures: %s", stored.object_id, exc)
            report = RecoveryReport(
                stored.object_id,
                RecoveryOutcome.UNRECOVERABLE,
                f"data unrecoverable: {exc}",
                missing=missing,
                error=exc,
            )
        except ChecksumMismatch as exc:
            logger.error("Checksum mismatch while rebuilding %s: %s", stored.object_id, exc)
            report = RecoveryReport(
                stored.object_id,
                RecoveryOutcome.CORRUPTED,
                f"internal error: {exc}",
                missing=missing,
                error=exc,
            )
        else:
            if plan.rebuilt_id is not None:
                message = f"rebuilt {plan.rebuilt_id} from {len(plan.used_ids)} surviving fragments"
            else:
                message = f"read {len(data)} bytes from {len(plan.used_ids)} data fragments"
            logger.info("Recovered %s: %s", stored.object_id, message)
            report = RecoveryReport(
                stored.object_id,
                RecoveryOutcome.SUCCESS,
                message,
                data=data,
                fragments_used=plan.used_ids,
                missing=missing,
                rebuilt=plan.rebuilt_id,
            )

        self.stats.record(report.outcome)
        self.last_report = report
        return report

    def recover(self, stored: StoredObject, cluster: "Cluster") -> bytes:
        report = self.attempt(stored, cluster)
        if report.error is not None:
            raise report.error
        return report.data

    # Node recovery planning -----------------------------------------------
    def plan_recovery(self, cluster: "Cluster", node_ids: Optional[Iterable[int]] = None) -> List[RecoveryStep]:
        """Order the restarts of failed nodes.

        A critical cluster restarts everything almost at once; otherwise nodes
        come back one at a time, two seconds apart.
        """
        targets = sorted(node_ids) if node_ids is not None else cluster.node_ids(NodeState.FAILED)
        if cluster.health().is_critical:
            strategy, stagger = RecoveryStrategy.IMMEDIATE_RESTART, IMMEDIATE_STAGGER_S
        else:
            strategy, stagger = RecoveryStrategy.GRADUAL_RECOVERY, GRADUAL_STAGGER_S
        return [
            RecoveryStep(node_id, RECOVERY_START_S + position * stagger, strategy)
            for position, node_id in enumerate(targets)
        ]

    def schedule_recovery(self, plan: Iterable[RecoveryStep], cluster: "Cluster", clock: "EventClock") -> int:
        count = 0
        for step in plan:
            clock.schedule_in(step.delay, cluster.recover_node, step.node_id, label=f"recover-{step.node_id}")
            count += 1
        logger.info("Scheduled %d node recoveries", count)
        return count

    @staticmethod
    def estimate_recovery_time(failed_count: int) -> float:
        """Seconds to restore ``failed_count`` nodes, allowing for parallel work."""
        return NODE_RECOVERY_S * max(0, failed_count) * PARALLELISM_FACTOR
