"""Failure injection patterns.

Every choice is drawn from the injected ``random.Random`` so that a seeded
generator replays the same outage sequence. Only node identities and states
are consulted, never fragment placement.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, List, Optional

from .models import FailureEvent, FailurePattern, FailureType, NodeState

if TYPE_CHECKING:  # pragma: no cover
    from .clock import EventClock
    from .cluster import Cluster

logger = logging.getLogger(__name__)

# Seconds until a node hit by each kind of failure is expected back.
REPAIR_TIME_S = {
    FailureType.NETWORK_TIMEOUT: 30.0,
    FailureType.SOFTWARE: 120.0,
    FailureType.DISK_FULL: 300.0,
    FailureType.POWER_OUTAGE: 1800.0,
    FailureType.HARDWARE: 3600.0,
}

# Cumulative draw thresholds for single-node failures.
_TYPE_THRESHOLDS = (
    (0.6, FailureType.HARDWARE),
    (0.8, FailureType.NETWORK_TIMEOUT),
    (0.9, FailureType.DISK_FULL),
    (1.0, FailureType.POWER_OUTAGE),
)

RACK_START_S = 5.0
RACK_STAGGER_S = 0.05


def estimate_repair_time(failure_type: FailureType) -> float:
    return REPAIR_TIME_S[failure_type]


@dataclass(frozen=True)
class ScheduledFailure:
    node_id: int
    at: float
    failure_type: FailureType
    pattern: FailurePattern = FailurePattern.RANDOM

    def as_event(self) -> FailureEvent:
        return FailureEvent(self.pattern, frozenset([self.node_id]), failure_type=self.failure_type)


def rack_failure(node_ids: Iterable[int]) -> List[ScheduledFailure]:
    """A whole rack loses power: every node fails within a few milliseconds."""
    return [
        ScheduledFailure(
            node_id,
            RACK_START_S + position * RACK_STAGGER_S,
            FailureType.POWER_OUTAGE,
            FailurePattern.PARTITION,
        )
        for position, node_id in enumerate(node_ids)
    ]


def rolling_failure(node_ids: Iterable[int], interval: float) -> List[ScheduledFailure]:
    """Nodes fail one after another, ``interval`` seconds apart."""
    if interval < 0:
        raise ValueError("interval must be non-negative")
    return [
        ScheduledFailure(node_id, position * interval, FailureType.HARDWARE, FailurePattern.CASCADE)
        for position, node_id in enumerate(node_ids)
    ]


def schedule_failures(failures: Iterable[ScheduledFailure], cluster: "Cluster", clock: "EventClock") -> int:
    """Queue each failure on ``clock`` relative to its current time."""
    count = 0
    for failure in failures:
        clock.schedule_in(failure.at, cluster.apply_failure, failure.as_event(), label=f"fail-{failure.node_id}")
        count += 1
    return count


class FailureGenerator:
    def __init__(
        self,
        rng: Optional[random.Random] = None,
        *,
        partition_size: Optional[int] = None,
        contiguous: bool = False,
    ):
        self.rng = rng or random.Random()
        self.partition_size = partition_size
        self.contiguous = contiguous
        self.cascade_depth = 0

    def reset(self) -> None:
        self.cascade_depth = 0

    def generate(self, pattern: FailurePattern, cluster: "Cluster") -> FailureEvent:
        if pattern is FailurePattern.RANDOM:
            return self._single(pattern, cluster)
        if pattern is FailurePattern.CASCADE:
            event = self._single(pattern, cluster)
            if not event.is_empty:
                self.cascade_depth += 1
            return event
        if pattern is FailurePattern.PARTITION:
            return self._partition(cluster)
        raise ValueError(f"Unsupported failure pattern {pattern!r}")

    def degrade(self, cluster: "Cluster") -> FailureEvent:
        """Pick one healthy node to slow down rather than fail."""
        healthy = cluster.node_ids(NodeState.HEALTHY)
        chosen = frozenset([self.rng.choice(healthy)]) if healthy else frozenset()
        return FailureEvent(
            FailurePattern.RANDOM,
            chosen,
            target_state=NodeState.DEGRADED,
            failure_type=FailureType.NETWORK_TIMEOUT,
        )

    def pick_failed_node(self, cluster: "Cluster") -> Optional[int]:
        failed = cluster.node_ids(NodeState.FAILED)
        if not failed:
            return None
        return self.rng.choice(failed)

    def failure_type(self) -> FailureType:
        draw = self.rng.random()
        for threshold, failure_type in _TYPE_THRESHOLDS:
            if draw < threshold:
                return failure_type
        return FailureType.POWER_OUTAGE

    def _single(self, pattern: FailurePattern, cluster: "Cluster") -> FailureEvent:
        healthy = cluster.node_ids(NodeState.HEALTHY)
        if not healthy:
            logger.debug("No healthy node left for a %s failure", pattern.value)
            return FailureEvent(pattern, frozenset())
        node_id = self.rng.choice(healthy)
        return FailureEvent(pattern, frozenset([node_id]), failure_type=self.failure_type())

    def _group_size(self, cluster: "Cluster") -> int:
        if self.partition_size is not None:
            return max(1, self.partition_size)
        return max(1, len(cluster.nodes) // 2)

    def _partition(self, cluster: "Cluster") -> FailureEvent:
        size = self._group_size(cluster)
        if self.contiguous:
            all_ids = cluster.node_ids()
            size = min(size, len(all_ids))
            start = self.rng.randrange(len(all_ids))
            group: List[int] = [all_ids[(start + step) % len(all_ids)] for step in range(size)]
        else:
            candidates = [
                node_id for node_id in cluster.node_ids() if cluster.node(node_id).state is not NodeState.FAILED
            ]
            group = self.rng.sample(candidates, min(size, len(candidates)))
        return FailureEvent(FailurePattern.PARTITION, frozenset(group), failure_type=FailureType.NETWORK_TIMEOUT)
