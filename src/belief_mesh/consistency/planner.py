"""Eventual consistency with bounded time.

A SynchronizationPlan splits agents into fixed-size batches, each with its
own time window. Executing the plan runs all-pairs synchronization inside
each batch in order, optionally stopping as soon as the population has
converged. Internal faults never escape the executor; they come back as
``PlanResult.error``.

Example:
    ```python
    plan = create_plan(agent_ids, max_time=10.0, batch_size=3)
    result = await execute_plan(plan, belief_sets, PlanExecutionOptions(time_scale=0))
    if result.early_stop:
        ...
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Mapping, Sequence
import asyncio
import logging
import math
import random
import time

from ..beliefs.belief_set import BeliefSet
from ..beliefs.conflicts import ConflictStrategy
from ..exceptions import PlanExecutionError
from ..propagation.convergence import verify_convergence
from ..propagation.protocol import synchronize_beliefs
from .tracker import ConsistencyTracker

logger = logging.getLogger(__name__)

ESTIMATE_WINDOW = 5


# =============================================================================
# Plan types
# =============================================================================


@dataclass(frozen=True)
class PlanBatch:
    """One batch of agents and its [start_time, end_time) window in seconds."""

    id: int
    agents: tuple[str, ...]
    start_time: float
    end_time: float


@dataclass(frozen=True)
class PlanOptions:
    max_time: float
    sync_interval: float
    batch_size: int


@dataclass(frozen=True)
class SynchronizationPlan:
    """Immutable synchronization schedule."""

    total_agents: int
    batch_count: int
    estimated_completion_time: float
    batches: tuple[PlanBatch, ...]
    options: PlanOptions


@dataclass
class PlanProgressUpdate:
    """Snapshot passed to a progress callback after each batch."""

    percent_complete: float
    batches_completed: int
    total_batches: int
    agents_synced: int
    total_agents: int
    convergence_score: float


@dataclass
class PlanExecutionOptions:
    """Options for execute_plan.

    Attributes:
        conflict_strategy: Strategy used by every pairwise merge
        time_scale: Multiplier for batch start times (0 disables sleeping)
        check_convergence: Measure convergence after each batch
        early_stop: Stop the whole plan once converged
        convergence_threshold: Score needed to count as converged
        progress_callback: Called after each batch
        rng: Random source for the probabilistic strategy
    """

    conflict_strategy: ConflictStrategy | str = ConflictStrategy.HIGHEST_CONFIDENCE
    time_scale: float = 1.0
    check_convergence: bool = True
    early_stop: bool = True
    convergence_threshold: float = 0.95
    progress_callback: Callable[[PlanProgressUpdate], None] | None = None
    rng: random.Random | None = None


@dataclass
class BatchResult:
    """Timing record for one executed batch."""

    batch_id: int
    start_time: datetime
    end_time: datetime
    duration: float
    agents: tuple[str, ...]

    @property
    def agent_count(self) -> int:
        return len(self.agents)


@dataclass
class PlanProgress:
    """Accumulated execution record."""

    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None
    batches_completed: int = 0
    agents_synced: int = 0
    batch_results: list[BatchResult] = field(default_factory=list)
    convergence_achieved: bool = False
    final_convergence_score: float = 0.0


@dataclass
class PlanResult:
    """Outcome of execute_plan."""

    belief_sets: dict[str, BeliefSet]
    results: PlanProgress
    early_stop: bool = False
    error: PlanExecutionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Continue:
    """Batch step value: carry on with the next batch."""

    belief_sets: dict[str, BeliefSet]


@dataclass(frozen=True)
class Stop:
    """Batch step value: the population converged, skip remaining batches."""

    belief_sets: dict[str, BeliefSet]


BatchStep = Continue | Stop


# =============================================================================
# Planning
# =============================================================================


def create_plan(
    agents: Sequence[str],
    max_time: float = 60.0,
    sync_interval: float = 1.0,
    batch_size: int = 10,
) -> SynchronizationPlan:
    """Split agents into time-windowed batches.

    Each batch i gets the window [i*T, (i+1)*T) where
    T = max(sync_interval, max_time / batch_count).

    Args:
        agents: Agent ids in scheduling order
        max_time: Overall time budget in seconds
        sync_interval: Minimum window length in seconds
        batch_size: Maximum agents per batch

    Returns:
        The plan
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    agents = list(agents)
    batch_count = math.ceil(len(agents) / batch_size)
    window = max(sync_interval, max_time / max(1, batch_count))

    batches = tuple(
        PlanBatch(
            id=index,
            agents=tuple(agents[offset:offset + batch_size]),
            start_time=index * window,
            end_time=(index + 1) * window,
        )
        for index, offset in enumerate(range(0, len(agents), batch_size))
    )

    return SynchronizationPlan(
        total_agents=len(agents),
        batch_count=batch_count,
        estimated_completion_time=batch_count * window,
        batches=batches,
        options=PlanOptions(max_time, sync_interval, batch_size),
    )


# =============================================================================
# Execution
# =============================================================================


def _sync_batch(
    batch: PlanBatch,
    belief_sets: dict[str, BeliefSet],
    options: PlanExecutionOptions,
) -> BatchResult:
    started = datetime.now()
    clock = time.monotonic()

    for agent_a in batch.agents:
        for agent_b in batch.agents:
            if agent_a == agent_b:
                continue
            set_a = belief_sets.get(agent_a)
            set_b = belief_sets.get(agent_b)
            if set_a is None or set_b is None:
                continue
            belief_sets[agent_a], belief_sets[agent_b] = synchronize_beliefs(
                set_a, set_b, options.conflict_strategy, rng=options.rng
            )

    return BatchResult(
        batch_id=batch.id,
        start_time=started,
        end_time=datetime.now(),
        duration=time.monotonic() - clock,
        agents=batch.agents,
    )


def _run_batch(
    plan: SynchronizationPlan,
    batch: PlanBatch,
    belief_sets: dict[str, BeliefSet],
    progress: PlanProgress,
    options: PlanExecutionOptions,
) -> BatchStep:
    progress.batch_results.append(_sync_batch(batch, belief_sets, options))
    progress.batches_completed += 1
    progress.agents_synced += len(batch.agents)

    if options.check_convergence:
        converged, score = verify_convergence(
            list(belief_sets.values()), options.convergence_threshold
        )
    else:
        converged, score = False, 0.0
    progress.convergence_achieved = converged
    progress.final_convergence_score = score

    logger.debug(
        f"Batch {batch.id} synced {len(batch.agents)} agents "
        f"(convergence {score:.2f})"
    )

    if options.progress_callback is not None:
        options.progress_callback(
            PlanProgressUpdate(
                percent_complete=progress.batches_completed / plan.batch_count * 100,
                batches_completed=progress.batches_completed,
                total_batches=plan.batch_count,
                agents_synced=progress.agents_synced,
                total_agents=plan.total_agents,
                convergence_score=score,
            )
        )

    if converged and options.early_stop:
        return Stop(belief_sets)
    return Continue(belief_sets)


async def execute_plan(
    plan: SynchronizationPlan,
    belief_sets: Mapping[str, BeliefSet],
    options: PlanExecutionOptions | None = None,
) -> PlanResult:
    """Execute a synchronization plan over a snapshot of belief sets.

    The input mapping and its sets are not modified; synchronized sets
    are returned in ``PlanResult.belief_sets``.

    Args:
        plan: Plan from create_plan
        belief_sets: Agent id to belief set
        options: Execution options

    Returns:
        PlanResult; ``error`` is set if a batch raised
    """
    options = options or PlanExecutionOptions()
    current = dict(belief_sets)
    progress = PlanProgress()
    started = time.monotonic()
    batch_id = None

    try:
        for batch in plan.batches:
            batch_id = batch.id
            delay = batch.start_time * options.time_scale - (time.monotonic() - started)
            if delay > 0:
                await asyncio.sleep(delay)

            step = _run_batch(plan, batch, current, progress, options)
            current = step.belief_sets
            if isinstance(step, Stop):
                progress.end_time = datetime.now()
                logger.info(
                    f"Plan converged after {progress.batches_completed}/"
                    f"{plan.batch_count} batches"
                )
                return PlanResult(belief_sets=current, results=progress, early_stop=True)

    except Exception as e:
        progress.end_time = datetime.now()
        error = PlanExecutionError(
            f"Error executing consistency plan: {e}", batch_id=batch_id, cause=e
        )
        logger.error(str(error))
        return PlanResult(belief_sets=dict(belief_sets), results=progress, error=error)

    progress.end_time = datetime.now()
    logger.info(
        f"Plan completed {progress.batches_completed} batches "
        f"(convergence {progress.final_convergence_score:.2f})"
    )
    return PlanResult(belief_sets=current, results=progress)


# =============================================================================
# Bounded consistency
# =============================================================================


class ConsistencyReason(str, Enum):
    """Why a time-to-consistency could not be promised."""

    INSUFFICIENT_DATA = "insufficient_data"
    NO_IMPROVEMENT = "no_improvement"
    EXCEEDS_TIME_BOUND = "exceeds_time_bound"


@dataclass(frozen=True)
class ConsistencyEstimate:
    """Projected time to reach a target convergence score."""

    ok: bool
    seconds: float = 0.0
    steps: int = 0
    reason: ConsistencyReason | None = None


@dataclass(frozen=True)
class BoundedConsistencyResult:
    ok: bool
    convergence_score: float
    estimated_time: float = 0.0
    reason: ConsistencyReason | None = None


def estimate_time_to_consistency(
    tracker: ConsistencyTracker,
    target_score: float = 0.95,
) -> ConsistencyEstimate:
    """Extrapolate linearly from the recent convergence trend.

    Uses the average change over the last few checks and the time between
    the two most recent checks as the step duration.
    """
    checks = tracker.recent_checks(ESTIMATE_WINDOW)
    if len(checks) < 2:
        return ConsistencyEstimate(ok=False, reason=ConsistencyReason.INSUFFICIENT_DATA)

    # Newest first, so a positive change is an improvement
    changes = [newer.score - older.score for newer, older in zip(checks, checks[1:])]
    avg_change = sum(changes) / len(changes)
    if avg_change <= 0:
        return ConsistencyEstimate(ok=False, reason=ConsistencyReason.NO_IMPROVEMENT)

    latest, previous = checks[0], checks[1]
    if latest.score >= target_score:
        return ConsistencyEstimate(ok=True)

    steps = math.ceil((target_score - latest.score) / avg_change)
    seconds_per_step = (latest.timestamp - previous.timestamp).total_seconds()
    return ConsistencyEstimate(ok=True, seconds=steps * seconds_per_step, steps=steps)


def verify_bounded_consistency(
    belief_sets: Sequence[BeliefSet],
    tracker: ConsistencyTracker,
    target_score: float = 0.95,
    max_time: float = 300.0,
) -> BoundedConsistencyResult:
    """Check whether the population is, or will soon be, consistent.

    The measured score is recorded in the tracker.

    Args:
        belief_sets: Current sets
        tracker: Tracker holding the convergence history
        target_score: Score that counts as consistent
        max_time: Budget in seconds for the projected time to consistency
    """
    converged, score = verify_convergence(belief_sets, target_score)
    tracker.record_convergence_check(score)

    if converged:
        return BoundedConsistencyResult(ok=True, convergence_score=score)

    estimate = estimate_time_to_consistency(tracker, target_score)
    if not estimate.ok:
        return BoundedConsistencyResult(
            ok=False, convergence_score=score, reason=estimate.reason
        )

    if estimate.seconds <= max_time:
        return BoundedConsistencyResult(
            ok=True, convergence_score=score, estimated_time=estimate.seconds
        )

    logger.warning(
        f"Projected time to consistency {estimate.seconds:.1f}s exceeds "
        f"bound of {max_time:.1f}s"
    )
    return BoundedConsistencyResult(
        ok=False,
        convergence_score=score,
        estimated_time=estimate.seconds,
        reason=ConsistencyReason.EXCEEDS_TIME_BOUND,
    )
