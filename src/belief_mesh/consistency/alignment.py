"""Local-global belief alignment.

A global belief set is derived from every agent's local set. Local sets can
then be reconciled against it under an enforcement level:

- STRONG: local becomes a copy of global (agent identity kept)
- ADDITIVE: add missing global beliefs, upgrade to higher-confidence
  global copies, never delete local-only beliefs
- ADVISORY: merge global into local with highest_confidence
- SELECTIVE: force in required ids from global, force out prohibited ids
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, Mapping, Sequence
import logging
import random
import time

from ..beliefs.atom import BeliefAtom
from ..beliefs.belief_set import BeliefSet
from ..beliefs.conflicts import ConflictStrategy, resolve_conflict
from ..beliefs.uncertainty import aggregate_beliefs

logger = logging.getLogger(__name__)

GLOBAL_AGENT_ID = "global"

# Estimated cost of aligning one agent, in seconds
ALIGNMENT_COST_PER_AGENT = 0.1


class EnforcementLevel(str, Enum):
    """How strongly a local set must yield to the global set."""

    STRONG = "strong"
    ADDITIVE = "additive"
    ADVISORY = "advisory"
    SELECTIVE = "selective"


def construct_global_state(
    local_sets: Iterable[BeliefSet],
    conflict_strategy: ConflictStrategy | str | None = ConflictStrategy.HIGHEST_CONFIDENCE,
    confidence_threshold: float = 0.5,
    *,
    rng: random.Random | None = None,
) -> BeliefSet:
    """Derive a global belief set from many local ones.

    Atoms are grouped by id. For each id:
    - one instance: kept if confident enough
    - several with identical content: confidences aggregated by weighted
      average, kept if the result is confident enough
    - several with differing content: folded pairwise through the
      conflict strategy, kept if the winner is confident enough

    Args:
        local_sets: Agents' belief sets
        conflict_strategy: Strategy for differing instances
        confidence_threshold: Minimum confidence to enter the global set
        rng: Random source for the probabilistic strategy

    Returns:
        Belief set owned by GLOBAL_AGENT_ID
    """
    by_id: dict[str, list[BeliefAtom]] = defaultdict(list)
    for local in local_sets:
        for atom in local:
            by_id[atom.id].append(atom)

    global_set = BeliefSet(GLOBAL_AGENT_ID)

    for instances in by_id.values():
        first, rest = instances[0], instances[1:]
        if not rest:
            candidate = first
        elif all(atom.content == first.content for atom in rest):
            candidate = aggregate_beliefs(instances)
        else:
            candidate = first
            for atom in rest:
                candidate = resolve_conflict(candidate, atom, conflict_strategy, rng=rng)

        if candidate.confidence >= confidence_threshold:
            global_set.add(candidate)

    logger.debug(
        f"Global state: {len(global_set)} of {len(by_id)} belief ids kept"
    )
    return global_set


def align_with_global(
    local: BeliefSet,
    global_set: BeliefSet,
    enforcement: EnforcementLevel | str = EnforcementLevel.ADVISORY,
    required_ids: Iterable[str] = (),
    prohibited_ids: Iterable[str] = (),
) -> BeliefSet:
    """Reconcile a local set against the global set.

    Args:
        local: Agent's set (not modified)
        global_set: Global set
        enforcement: Enforcement level (unknown values act as ADVISORY)
        required_ids: Ids forced in from global under SELECTIVE
        prohibited_ids: Ids removed under SELECTIVE

    Returns:
        New set owned by the local agent
    """
    try:
        enforcement = EnforcementLevel(enforcement)
    except ValueError:
        logger.warning(f"Unknown enforcement level {enforcement!r}, using advisory")
        enforcement = EnforcementLevel.ADVISORY

    if enforcement is EnforcementLevel.STRONG:
        return global_set.copy(agent_id=local.agent_id)

    if enforcement is EnforcementLevel.ADDITIVE:
        aligned = local.copy()
        for global_atom in global_set:
            local_atom = aligned.get(global_atom.id)
            if local_atom is None or global_atom.confidence > local_atom.confidence:
                aligned.add(global_atom)
        return aligned

    if enforcement is EnforcementLevel.SELECTIVE:
        aligned = local.copy()
        for belief_id in required_ids:
            global_atom = global_set.get(belief_id)
            if global_atom is not None:
                aligned.update(global_atom)
        for belief_id in prohibited_ids:
            aligned.remove(belief_id)
        return aligned

    return local.merge(global_set, ConflictStrategy.HIGHEST_CONFIDENCE)


def alignment_score(local: BeliefSet, global_set: BeliefSet) -> float:
    """Fraction of global beliefs whose content the local set matches."""
    if not len(global_set):
        return 1.0
    aligned = 0
    for global_atom in global_set:
        local_atom = local.get(global_atom.id)
        if local_atom is not None and local_atom.content == global_atom.content:
            aligned += 1
    return aligned / len(global_set)


def identify_misaligned_agents(
    agent_sets: Mapping[str, BeliefSet],
    global_set: BeliefSet,
    threshold: float = 0.7,
) -> list[tuple[str, float]]:
    """Agents whose alignment score is below ``threshold``, with scores."""
    scores = [
        (agent_id, alignment_score(belief_set, global_set))
        for agent_id, belief_set in agent_sets.items()
    ]
    return [(agent_id, score) for agent_id, score in scores if score < threshold]


# =============================================================================
# Alignment plans
# =============================================================================


@dataclass(frozen=True)
class AgentAlignment:
    agent_id: str
    alignment: float


@dataclass(frozen=True)
class AlignmentPlan:
    """Which agents to realign, in what order, and how.

    ``agents`` is sorted most-misaligned first; ``important_ids`` are the
    global beliefs at or above the priority threshold.
    """

    agents: tuple[AgentAlignment, ...]
    global_version: datetime
    important_ids: tuple[str, ...]
    enforcement: EnforcementLevel
    estimated_time: float
    max_time: float


@dataclass
class AgentAlignmentResult:
    agent_id: str
    before_score: float
    after_score: float

    @property
    def improvement(self) -> float:
        return self.after_score - self.before_score


@dataclass
class AlignmentProgressUpdate:
    percent_complete: float
    agents_aligned: int
    total_agents: int
    latest: AgentAlignmentResult


@dataclass
class AlignmentExecution:
    """Outcome of execute_alignment_plan."""

    belief_sets: dict[str, BeliefSet]
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None
    agents_aligned: int = 0
    agent_results: list[AgentAlignmentResult] = field(default_factory=list)
    time_exceeded: bool = False


def create_alignment_plan(
    misaligned: Sequence[tuple[str, float]],
    global_set: BeliefSet,
    max_time: float = 30.0,
    enforcement: EnforcementLevel | str = EnforcementLevel.ADVISORY,
    priority_threshold: float = 0.5,
) -> AlignmentPlan:
    """Build an alignment plan for misaligned agents.

    Args:
        misaligned: (agent id, alignment score) pairs
        global_set: Global set to align against
        max_time: Wall-clock budget in seconds
        enforcement: Enforcement level to apply
        priority_threshold: Minimum confidence for a global belief to be
            treated as important (required) during alignment
    """
    ordered = sorted(misaligned, key=lambda pair: pair[1])
    important = tuple(
        atom.id for atom in global_set if atom.confidence >= priority_threshold
    )
    return AlignmentPlan(
        agents=tuple(AgentAlignment(agent_id, score) for agent_id, score in ordered),
        global_version=global_set.last_updated,
        important_ids=important,
        enforcement=EnforcementLevel(enforcement),
        estimated_time=min(len(ordered) * ALIGNMENT_COST_PER_AGENT, max_time),
        max_time=max_time,
    )


def execute_alignment_plan(
    plan: AlignmentPlan,
    agent_sets: Mapping[str, BeliefSet],
    global_set: BeliefSet,
    progress_callback: Callable[[AlignmentProgressUpdate], None] | None = None,
) -> AlignmentExecution:
    """Align each planned agent in order until done or out of time.

    The time budget is checked between agents, never mid-agent. Agents
    missing from ``agent_sets`` are skipped.

    Returns:
        AlignmentExecution with the updated sets (input mapping untouched)
    """
    execution = AlignmentExecution(belief_sets=dict(agent_sets))
    started = time.monotonic()

    for planned in plan.agents:
        belief_set = execution.belief_sets.get(planned.agent_id)
        if belief_set is None:
            logger.warning(f"Agent {planned.agent_id} has no belief set, skipping alignment")
            continue

        aligned = align_with_global(
            belief_set,
            global_set,
            plan.enforcement,
            required_ids=plan.important_ids,
        )
        execution.belief_sets[planned.agent_id] = aligned
        result = AgentAlignmentResult(
            agent_id=planned.agent_id,
            before_score=planned.alignment,
            after_score=alignment_score(aligned, global_set),
        )
        execution.agent_results.append(result)
        execution.agents_aligned += 1

        if progress_callback is not None:
            progress_callback(
                AlignmentProgressUpdate(
                    percent_complete=execution.agents_aligned / len(plan.agents) * 100,
                    agents_aligned=execution.agents_aligned,
                    total_agents=len(plan.agents),
                    latest=result,
                )
            )

        if time.monotonic() - started > plan.max_time:
            logger.warning(
                f"Alignment budget of {plan.max_time:.1f}s exceeded after "
                f"{execution.agents_aligned} agents"
            )
            execution.time_exceeded = True
            break

    execution.end_time = datetime.now()
    logger.info(f"Aligned {execution.agents_aligned} agents with global state")
    return execution
