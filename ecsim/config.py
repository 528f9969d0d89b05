"""Configuration primitives for the simulator."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from .errors import InvalidConfiguration

DEMO_CHOICES = ("educational", "basic", "stress", "partition", "performance", "recovery")

_ENV_PREFIX = "ECSIM_"


@dataclass(frozen=True)
class SimulationConfig:
    nodes: int = 6
    data_chunks: int = 4
    parity_chunks: int = 2
    demo: Optional[str] = None
    headless: bool = False
    seed: Optional[int] = None
    tick_interval: float = 0.1  # seconds of simulated time per tick at speed 1.0
    auto_failure_interval: float = 2.0
    partition_size: Optional[int] = None
    event_history: int = 200
    log_level: str = "INFO"

    @property
    def total_fragments(self) -> int:
        return self.data_chunks + self.parity_chunks

    @property
    def storage_overhead(self) -> float:
        return self.total_fragments / self.data_chunks

    def validate(self) -> "SimulationConfig":
        if self.data_chunks < 1:
            raise InvalidConfiguration(f"data_chunks must be at least 1 (got {self.data_chunks})")
        if self.parity_chunks < 0:
            raise InvalidConfiguration(f"parity_chunks cannot be negative (got {self.parity_chunks})")
        if self.nodes < self.total_fragments:
            raise InvalidConfiguration(
                f"Not enough nodes: need at least {self.total_fragments} for a "
                f"{self.data_chunks}/{self.parity_chunks} scheme, have {self.nodes}"
            )
        if self.demo is not None and self.demo not in DEMO_CHOICES:
            raise InvalidConfiguration(f"Unknown demo '{self.demo}'")
        if self.tick_interval <= 0 or self.auto_failure_interval <= 0:
            raise InvalidConfiguration("tick_interval and auto_failure_interval must be positive")
        if self.partition_size is not None and self.partition_size < 1:
            raise InvalidConfiguration("partition_size must be positive")
        return self

    def with_overrides(self, **changes) -> "SimulationConfig":
        return replace(self, **{key: value for key, value in changes.items() if value is not None})

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SimulationConfig":
        """Build a config from ``ECSIM_*`` variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        overrides = {}
        for name, cast in (
            ("nodes", int),
            ("data_chunks", int),
            ("parity_chunks", int),
            ("seed", int),
            ("partition_size", int),
            ("tick_interval", float),
            ("auto_failure_interval", float),
            ("demo", str),
            ("log_level", str),
        ):
            raw = env.get(_ENV_PREFIX + name.upper())
            if raw is None or not raw.strip():
                continue
            try:
                overrides[name] = cast(raw.strip())
            except ValueError as exc:
                raise InvalidConfiguration(f"{_ENV_PREFIX}{name.upper()}: {exc}") from exc
        headless = env.get(_ENV_PREFIX + "HEADLESS", "")
        if headless.strip():
            overrides["headless"] = headless.strip().lower() in {"1", "true", "yes", "on"}
        return cls().with_overrides(**overrides)
