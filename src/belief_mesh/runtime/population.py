"""Whole-population operations over running agents.

Each operation snapshots the agents' belief sets through their mailboxes,
runs the pure consistency layer over the snapshot, and (where it changes
anything) posts the resulting sets back. Agents that cannot be reached
within the timeout are skipped with a warning.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence
import asyncio
import logging
import random

from ..beliefs.belief_set import BeliefSet
from ..beliefs.conflicts import ConflictStrategy
from ..consistency.alignment import (
    EnforcementLevel,
    construct_global_state,
    create_alignment_plan,
    execute_alignment_plan,
    identify_misaligned_agents,
)
from ..consistency.planner import (
    PlanExecutionOptions,
    PlanResult,
    SynchronizationPlan,
    create_plan,
    execute_plan,
)
from ..consistency.tracker import ConsistencyTracker
from ..consistency.verification import VerificationResult
from ..consistency.verification import verify_consistency as verify_sets
from ..exceptions import PropagationError
from .agent import DEFAULT_REQUEST_TIMEOUT, BeliefAgent
from .registry import AgentRegistry

logger = logging.getLogger(__name__)


def _resolve_all(
    agents: Iterable[BeliefAgent | str],
    registry: AgentRegistry | None,
) -> list[BeliefAgent]:
    resolved = []
    for ref in agents:
        if isinstance(ref, BeliefAgent):
            resolved.append(ref)
        elif registry is None:
            logger.warning(f"Cannot resolve agent {ref!r} without a registry, skipping")
        else:
            try:
                resolved.append(registry.resolve(ref))
            except PropagationError as e:
                logger.warning(f"Skipping agent {ref!r}: {e}")
    return resolved


async def collect_belief_sets(
    agents: Iterable[BeliefAgent | str],
    *,
    registry: AgentRegistry | None = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> dict[str, BeliefSet]:
    """Snapshot every reachable agent's belief set, keyed by agent id."""
    resolved = _resolve_all(agents, registry)
    snapshots = await asyncio.gather(
        *(agent.get_belief_set(timeout=timeout) for agent in resolved),
        return_exceptions=True,
    )

    belief_sets = {}
    for agent, snapshot in zip(resolved, snapshots):
        if isinstance(snapshot, PropagationError):
            logger.warning(f"Skipping agent {agent.agent_id}: {snapshot}")
            continue
        if isinstance(snapshot, BaseException):
            raise snapshot
        belief_sets[agent.agent_id] = snapshot
    return belief_sets


def _write_back(
    agents: Sequence[BeliefAgent],
    belief_sets: dict[str, BeliefSet],
) -> None:
    for agent in agents:
        belief_set = belief_sets.get(agent.agent_id)
        if belief_set is None:
            continue
        try:
            agent.replace_belief_set(belief_set)
        except PropagationError as e:
            logger.warning(f"Could not update agent {agent.agent_id}: {e}")


async def global_belief_state(
    agents: Iterable[BeliefAgent | str],
    *,
    conflict_strategy: ConflictStrategy | str = ConflictStrategy.HIGHEST_CONFIDENCE,
    confidence_threshold: float = 0.5,
    rng: random.Random | None = None,
    registry: AgentRegistry | None = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> BeliefSet:
    """Build the global belief set from the agents' current sets."""
    belief_sets = await collect_belief_sets(agents, registry=registry, timeout=timeout)
    return construct_global_state(
        belief_sets.values(), conflict_strategy, confidence_threshold, rng=rng
    )


async def ensure_consistency(
    agents: Iterable[BeliefAgent | str],
    *,
    max_time: float = 60.0,
    sync_interval: float = 1.0,
    batch_size: int = 10,
    options: PlanExecutionOptions | None = None,
    tracker: ConsistencyTracker | None = None,
    apply_results: bool = True,
    registry: AgentRegistry | None = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> tuple[SynchronizationPlan, PlanResult]:
    """Plan and execute a synchronization round over the agents.

    Args:
        agents: Agents (or ids, with a registry)
        max_time: Plan time budget in seconds
        sync_interval: Minimum batch window in seconds
        batch_size: Agents per batch
        options: Plan execution options
        tracker: Updated with the new global version, every synced agent's
            version and the final convergence score
        apply_results: Post the synchronized sets back to the agents
        registry: Resolves agent ids
        timeout: Per-agent snapshot timeout

    Returns:
        (plan, result)
    """
    resolved = _resolve_all(agents, registry)
    belief_sets = await collect_belief_sets(resolved, timeout=timeout)

    plan = create_plan(list(belief_sets), max_time, sync_interval, batch_size)
    result = await execute_plan(plan, belief_sets, options)

    if not result.ok:
        return plan, result

    if apply_results:
        _write_back(resolved, result.belief_sets)

    if tracker is not None:
        version = tracker.increment_global_version()
        for agent_id in result.belief_sets:
            tracker.update_agent_version(agent_id, version)
        tracker.record_convergence_check(result.results.final_convergence_score, version)

    return plan, result


async def verify_consistency(
    agents: Iterable[BeliefAgent | str],
    consistency_threshold: float = 0.9,
    alignment_threshold: float = 0.8,
    *,
    conflict_strategy: ConflictStrategy | str = ConflictStrategy.HIGHEST_CONFIDENCE,
    confidence_threshold: float = 0.5,
    partition_threshold: float = 0.3,
    rng: random.Random | None = None,
    registry: AgentRegistry | None = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> VerificationResult:
    """Audit the consistency of the agents' current sets."""
    belief_sets = await collect_belief_sets(agents, registry=registry, timeout=timeout)
    return verify_sets(
        belief_sets,
        consistency_threshold,
        alignment_threshold,
        conflict_strategy=conflict_strategy,
        confidence_threshold=confidence_threshold,
        partition_threshold=partition_threshold,
        rng=rng,
    )


@dataclass(frozen=True)
class AlignmentSummary:
    """Outcome of align_with_global.

    ``status`` is "aligned" when nobody needed realigning, else "realigned".
    """

    status: str
    agents: int
    misaligned: int
    aligned: int
    global_belief_count: int


async def align_with_global(
    agents: Iterable[BeliefAgent | str],
    *,
    alignment_threshold: float = 0.7,
    enforcement: EnforcementLevel | str = EnforcementLevel.ADVISORY,
    max_time: float = 30.0,
    priority_threshold: float = 0.5,
    conflict_strategy: ConflictStrategy | str = ConflictStrategy.HIGHEST_CONFIDENCE,
    confidence_threshold: float = 0.5,
    rng: random.Random | None = None,
    registry: AgentRegistry | None = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> AlignmentSummary:
    """Realign agents whose sets drift from the global state.

    Args:
        agents: Agents (or ids, with a registry)
        alignment_threshold: Agents scoring below this are realigned
        enforcement: Enforcement level for realignment
        max_time: Alignment time budget in seconds
        priority_threshold: Confidence at which global beliefs are required
        conflict_strategy: Strategy used to build the global state
        confidence_threshold: Minimum confidence for the global state
        rng: Random source for the probabilistic strategy
        registry: Resolves agent ids
        timeout: Per-agent snapshot timeout
    """
    resolved = _resolve_all(agents, registry)
    belief_sets = await collect_belief_sets(resolved, timeout=timeout)
    global_set = construct_global_state(
        belief_sets.values(), conflict_strategy, confidence_threshold, rng=rng
    )

    misaligned = identify_misaligned_agents(belief_sets, global_set, alignment_threshold)
    if not misaligned:
        return AlignmentSummary(
            status="aligned",
            agents=len(resolved),
            misaligned=0,
            aligned=0,
            global_belief_count=len(global_set),
        )

    plan = create_alignment_plan(
        misaligned, global_set, max_time, enforcement, priority_threshold
    )
    execution = execute_alignment_plan(plan, belief_sets, global_set)

    realigned = {r.agent_id: execution.belief_sets[r.agent_id] for r in execution.agent_results}
    _write_back(resolved, realigned)

    logger.info(
        f"Realigned {execution.agents_aligned} of {len(misaligned)} misaligned agents"
    )
    return AlignmentSummary(
        status="realigned",
        agents=len(resolved),
        misaligned=len(misaligned),
        aligned=execution.agents_aligned,
        global_belief_count=len(global_set),
    )
