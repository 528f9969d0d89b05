from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import DEMO_CHOICES, SimulationConfig
from .errors import InvalidConfiguration
from .scenarios import run_headless_demo, run_scenario
from .shell import launch_shell
from .simulation import SimulationLoop

logger = logging.getLogger(__name__)


def _print_summary(summary: dict) -> None:
    print(f"\n=== Scenario: {summary.get('scenario')} ===")
    for line in summary.get("log", []):
        print(f"  {line}")
    if summary.get("events"):
        print("  Sample events:")
        for line in summary["events"]:
            print(f"    {line}")
    snapshot = summary.get("snapshot") or {}
    health = snapshot.get("health")
    if health:
        print(
            f"  Final health: {health['healthy_nodes']}/{health['total_nodes']} healthy "
            f"({health['description']})"
        )
    recovery = snapshot.get("recovery")
    if recovery:
        print(f"  Recovery: {recovery['successful']}/{recovery['total_attempts']} successful")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Erasure coding storage simulator")
    parser.add_argument("--nodes", type=int, default=None, help="Number of storage nodes (default 6)")
    parser.add_argument("--data-chunks", type=int, default=None, help="Data fragments per object (default 4)")
    parser.add_argument("--parity-chunks", type=int, default=None, help="Parity fragments per object (default 2)")
    parser.add_argument("--demo", choices=DEMO_CHOICES, default=None, help="Run one demo scenario and exit")
    parser.add_argument(
        "--headless",
        action="store_true",
        default=None,
        help="Run the non-interactive failure walkthrough instead of the shell",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible failure sequences")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit raw JSON summaries instead of formatted text",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default INFO)")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace, environ=None) -> SimulationConfig:
    config = SimulationConfig.from_env(environ).with_overrides(
        nodes=args.nodes,
        data_chunks=args.data_chunks,
        parity_chunks=args.parity_chunks,
        demo=args.demo,
        headless=args.headless,
        seed=args.seed,
        log_level=args.log_level,
    )
    return config.validate()


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        config = build_config(args)
    except InvalidConfiguration as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="[%(asctime)s] %(levelname)s %(message)s",
    )
    logger.info(
        "Cluster: %s nodes, %s+%s scheme, overhead %.2fx",
        config.nodes,
        config.data_chunks,
        config.parity_chunks,
        config.storage_overhead,
    )

    summaries = []
    if config.headless:
        summaries.append(run_headless_demo(config))
    if config.demo:
        summaries.append(run_scenario(config.demo, config))
    if not summaries:
        launch_shell(SimulationLoop(config))
        return 0

    if args.json:
        print(json.dumps(summaries, indent=2))
        return 0
    for summary in summaries:
        _print_summary(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
