from __future__ import annotations

import heapq
import itertools
import math
from dataclasses import dataclass, field
from typing import Any, Callable, List, Tuple


@dataclass(order=True)
class _TimedAction:
    due: float
    order: int
    label: str = field(compare=False)
    callback: Callable[..., None] = field(compare=False)
    args: Tuple[Any, ...] = field(default_factory=tuple, compare=False)


class EventClock:
    """Simulated clock that fires scheduled actions as ticks advance it.

    Actions due at the same instant fire in the order they were scheduled.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[_TimedAction] = []
        self._order = itertools.count()

    @property
    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> List[str]:
        return [action.label for action in sorted(self._queue)]

    def schedule_in(self, delay: float, callback: Callable[..., None], *args: Any, label: str = "") -> None:
        if delay < 0:
            raise ValueError("Delay must be non-negative")
        action = _TimedAction(self._now + delay, next(self._order), label or callback.__name__, callback, args)
        heapq.heappush(self._queue, action)

    def advance(self, elapsed: float) -> int:
        """Move the clock forward and run every action that became due."""
        if not math.isfinite(elapsed):
            raise ValueError(f"Elapsed time must be finite (got {elapsed})")
        if elapsed < 0:
            raise ValueError("Cannot move the clock backwards")
        target = self._now + elapsed
        fired = 0
        while self._queue and self._queue[0].due <= target:
            action = heapq.heappop(self._queue)
            self._now = action.due
            action.callback(*action.args)
            fired += 1
        self._now = target
        return fired

    def clear(self) -> None:
        self._queue.clear()
