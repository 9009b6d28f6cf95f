"""CLI for running belief mesh simulations.

Spins up a population of in-process agents, seeds them with overlapping
and conflicting beliefs, then runs a synchronization plan, global
alignment and a consistency audit, printing a JSON report.

Usage:
    # Ten agents, twenty propositions
    belief-mesh simulate --agents 10 --beliefs 20

    # Reproducible run with the newest-wins strategy
    belief-mesh simulate --agents 6 --strategy newest --seed 7

    # Use settings from a YAML file
    python -m belief_mesh.cli.simulate simulate --config ./belief_mesh.yaml
"""

import argparse
import asyncio
import json
import logging
import random
import sys
from dataclasses import asdict, replace
from typing import Any

from ..beliefs.conflicts import ConflictStrategy
from ..config import STRATEGY_NAMES, BeliefMeshConfig, load_config
from ..consistency.planner import PlanExecutionOptions
from ..consistency.tracker import ConsistencyTracker
from ..exceptions import BeliefMeshError
from ..runtime.agent import AgentConfig, BeliefAgent
from ..runtime.population import align_with_global, ensure_consistency, verify_consistency
from ..runtime.registry import AgentRegistry

logger = logging.getLogger(__name__)

VALUES = ("red", "green", "blue")


async def seed_beliefs(
    agents: list[BeliefAgent],
    belief_count: int,
    rng: random.Random,
) -> None:
    """Have random subsets of agents author each proposition.

    Every proposition gets a shared id and the same shape, so agents that
    pick different values conflict.
    """
    for index in range(belief_count):
        holders = rng.sample(agents, rng.randint(1, len(agents)))
        for agent in holders:
            await agent.author_belief(
                {"proposition": index, "value": rng.choice(VALUES)},
                round(rng.uniform(0.3, 1.0), 2),
                belief_id=f"sim_belief_{index}",
            )


async def simulate_command(args: argparse.Namespace) -> dict[str, Any]:
    """Run one simulation and return the report."""
    config: BeliefMeshConfig = load_config(args.config)
    consistency = config.consistency
    strategy = ConflictStrategy.parse(args.strategy or config.propagation.conflict_strategy)
    rng = random.Random(args.seed)

    agent_config = replace(
        AgentConfig.from_mesh_config(config),
        conflict_strategy=strategy,
        auto_sync=False,
    )

    registry = AgentRegistry()
    agents = [
        registry.create_agent(f"agent_{i}", agent_config, rng=rng)
        for i in range(args.agents)
    ]
    await registry.start_all()

    try:
        await seed_beliefs(agents, args.beliefs, rng)

        tracker = ConsistencyTracker()
        plan, result = await ensure_consistency(
            agents,
            max_time=consistency.max_time,
            sync_interval=consistency.sync_interval,
            batch_size=args.batch_size or consistency.batch_size,
            options=PlanExecutionOptions(
                conflict_strategy=strategy,
                time_scale=args.time_scale,
                convergence_threshold=consistency.convergence_threshold,
                rng=rng,
            ),
            tracker=tracker,
        )

        alignment = await align_with_global(
            agents,
            max_time=consistency.alignment_max_time,
            conflict_strategy=strategy,
            confidence_threshold=consistency.confidence_threshold,
            rng=rng,
        )

        verification = await verify_consistency(
            agents,
            consistency.consistency_threshold,
            consistency.alignment_threshold,
            conflict_strategy=strategy,
            confidence_threshold=consistency.confidence_threshold,
            partition_threshold=consistency.partition_threshold,
            rng=rng,
        )
    finally:
        await registry.stop_all()

    return {
        "agents": args.agents,
        "beliefs": args.beliefs,
        "strategy": strategy.value,
        "plan": {
            "batch_count": plan.batch_count,
            "estimated_completion_time": plan.estimated_completion_time,
            "batches_completed": result.results.batches_completed,
            "early_stop": result.early_stop,
            "convergence_score": result.results.final_convergence_score,
            "error": str(result.error) if result.error else None,
        },
        "alignment": asdict(alignment),
        "verification": {
            "consistent": verification.consistent,
            "conflicts": len(verification.conflicts),
            "alignment_score": verification.alignment_score,
            "partition_detected": verification.partition_detected,
            "convergence_score": verification.convergence_score,
            "recommendations": verification.recommendations,
        },
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="belief-mesh",
        description="Belief Mesh - decentralized belief convergence simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  belief-mesh simulate --agents 10 --beliefs 20
  belief-mesh simulate --agents 6 --strategy newest --seed 7 --log-level DEBUG
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    sim = subparsers.add_parser("simulate", help="Run a convergence simulation")
    sim.add_argument("--agents", type=int, default=5, help="Number of agents")
    sim.add_argument("--beliefs", type=int, default=10, help="Number of propositions")
    sim.add_argument("--batch-size", type=int, help="Agents per synchronization batch")
    sim.add_argument("--strategy", choices=STRATEGY_NAMES, help="Conflict strategy")
    sim.add_argument("--seed", type=int, default=0, help="Random seed")
    sim.add_argument(
        "--time-scale",
        type=float,
        default=0.0,
        help="Multiplier for batch start times (0 runs batches back to back)",
    )
    sim.add_argument("--config", help="YAML config file")
    sim.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.agents < 1 or args.beliefs < 0 or (args.batch_size is not None and args.batch_size < 1):
        print(
            "Error: --agents and --batch-size must be at least 1, --beliefs non-negative",
            file=sys.stderr,
        )
        return 2

    try:
        report = asyncio.run(simulate_command(args))
    except BeliefMeshError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(report, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
