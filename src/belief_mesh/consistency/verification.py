"""Consistency verification across a population of belief sets.

``verify_consistency`` is the composite audit: it builds the global state
and combines its internal conflicts, partition detection, convergence and
per-agent alignment into one verdict with remediation hints.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping
import logging
import random

import numpy as np

from ..beliefs.atom import BeliefAtom
from ..beliefs.belief_set import BeliefSet
from ..beliefs.conflicts import ConflictStrategy
from ..propagation.convergence import detect_partition, verify_convergence
from .alignment import alignment_score, construct_global_state

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BeliefSummary:
    id: str
    content: Any
    confidence: float
    source: str

    @classmethod
    def of(cls, atom: BeliefAtom) -> "BeliefSummary":
        return cls(atom.id, atom.content, atom.confidence, atom.source)


@dataclass(frozen=True)
class ConflictReport:
    """A conflicting pair found in the global state."""

    belief1: BeliefSummary
    belief2: BeliefSummary


@dataclass
class VerificationResult:
    """Verdict of verify_consistency."""

    consistent: bool
    conflicts: list[ConflictReport]
    alignment_score: float
    agent_alignment: dict[str, float]
    partition_detected: bool
    convergence_score: float
    recommendations: list[str] = field(default_factory=list)


def _recommendations(
    has_conflicts: bool,
    partition_detected: bool,
    convergence_score: float,
    mean_alignment: float,
    consistency_threshold: float,
    alignment_threshold: float,
) -> list[str]:
    recommendations = []
    if has_conflicts:
        recommendations.append("Resolve conflicting beliefs in global state")
    if partition_detected:
        recommendations.extend([
            "Network partition detected - check agent connectivity",
            "Consider implementing partition-tolerant belief updates",
        ])
    if convergence_score < consistency_threshold:
        recommendations.extend([
            "Improve belief propagation to increase convergence "
            f"(current: {convergence_score:.2f})",
            "Consider increasing sync frequency between agents",
        ])
    if mean_alignment < alignment_threshold:
        recommendations.extend([
            f"Improve global-local alignment (current: {mean_alignment:.2f})",
            "Consider stronger enforcement policy for important beliefs",
        ])
    return recommendations


def verify_consistency(
    agent_sets: Mapping[str, BeliefSet],
    consistency_threshold: float = 0.9,
    alignment_threshold: float = 0.8,
    *,
    conflict_strategy: ConflictStrategy | str | None = ConflictStrategy.HIGHEST_CONFIDENCE,
    confidence_threshold: float = 0.5,
    partition_threshold: float = 0.3,
    rng: random.Random | None = None,
) -> VerificationResult:
    """Audit the consistency of a population of belief sets.

    consistent = no conflicts in the global state
        and convergence >= consistency_threshold
        and mean alignment >= alignment_threshold

    Args:
        agent_sets: Agent id to belief set
        consistency_threshold: Minimum convergence score
        alignment_threshold: Minimum mean alignment score
        conflict_strategy: Strategy used to build the global state
        confidence_threshold: Minimum confidence for the global state
        partition_threshold: Similarity threshold for partition detection
        rng: Random source for the probabilistic strategy

    Returns:
        VerificationResult
    """
    belief_sets = list(agent_sets.values())
    global_set = construct_global_state(
        belief_sets, conflict_strategy, confidence_threshold, rng=rng
    )

    conflicts = global_set.find_conflicts()
    partition_detected, _clusters = detect_partition(belief_sets, partition_threshold)
    _converged, convergence_score = verify_convergence(belief_sets)

    agent_alignment = {
        agent_id: alignment_score(belief_set, global_set)
        for agent_id, belief_set in agent_sets.items()
    }
    mean_alignment = (
        float(np.mean(list(agent_alignment.values()))) if agent_alignment else 1.0
    )

    consistent = (
        not conflicts
        and convergence_score >= consistency_threshold
        and mean_alignment >= alignment_threshold
    )

    result = VerificationResult(
        consistent=consistent,
        conflicts=[
            ConflictReport(BeliefSummary.of(a), BeliefSummary.of(b)) for a, b in conflicts
        ],
        alignment_score=mean_alignment,
        agent_alignment=agent_alignment,
        partition_detected=partition_detected,
        convergence_score=convergence_score,
        recommendations=_recommendations(
            bool(conflicts),
            partition_detected,
            convergence_score,
            mean_alignment,
            consistency_threshold,
            alignment_threshold,
        ),
    )

    logger.info(
        f"Verified {len(agent_sets)} agents: consistent={consistent}, "
        f"convergence={convergence_score:.2f}, alignment={mean_alignment:.2f}, "
        f"conflicts={len(conflicts)}"
    )
    return result


# =============================================================================
# Per-belief checks
# =============================================================================


@dataclass(frozen=True)
class ConfidenceStats:
    average: float
    min: float
    max: float

    @property
    def range(self) -> float:
        return self.max - self.min


@dataclass(frozen=True)
class BeliefConsistency:
    """How consistently one belief id is held across agents.

    Only ``present`` is meaningful when no agent holds the belief.
    """

    present: bool
    instances: int = 0
    content_consistent: bool = False
    confidence_stats: ConfidenceStats | None = None
    consistency_score: float = 0.0


def verify_belief_consistency(
    belief_ids: Iterable[str],
    agent_sets: Mapping[str, BeliefSet],
) -> dict[str, BeliefConsistency]:
    """Check specific beliefs across agents.

    When every holder agrees on content, the score is
    1 - min(1, 4 * variance of confidences). Otherwise it is the share of
    holders with the most common content.
    """
    results = {}
    for belief_id in belief_ids:
        instances = [
            belief_set.beliefs[belief_id]
            for belief_set in agent_sets.values()
            if belief_id in belief_set
        ]
        if not instances:
            results[belief_id] = BeliefConsistency(present=False)
            continue

        first_content = instances[0].content
        content_consistent = all(atom.content == first_content for atom in instances)
        confidences = np.array([atom.confidence for atom in instances], dtype=float)

        if content_consistent:
            score = 1.0 - min(1.0, float(np.var(confidences)) * 4)
        else:
            counts = Counter(repr(atom.content) for atom in instances)
            score = counts.most_common(1)[0][1] / len(instances)

        results[belief_id] = BeliefConsistency(
            present=True,
            instances=len(instances),
            content_consistent=content_consistent,
            confidence_stats=ConfidenceStats(
                average=float(confidences.mean()),
                min=float(confidences.min()),
                max=float(confidences.max()),
            ),
            consistency_score=score,
        )
    return results


@dataclass(frozen=True)
class PropagationTiming:
    """Spread of one belief's timestamps across agents.

    Only ``measurable`` is meaningful when fewer than two agents hold it.
    """

    measurable: bool
    propagation_time: float = 0.0
    meets_expectation: bool = False
    coverage: float = 0.0
    first_agent: str | None = None
    last_agent: str | None = None
    first_seen: datetime | None = None
    last_seen: datetime | None = None


def verify_propagation_timing(
    agent_sets: Mapping[str, BeliefSet],
    belief_ids: Iterable[str],
    expected_time: float = 1.0,
) -> dict[str, PropagationTiming]:
    """Measure how long beliefs took to spread.

    Propagation time is the gap in seconds between the earliest and latest
    timestamp of a belief across the agents holding it; coverage is the
    share of agents holding it.
    """
    results = {}
    for belief_id in belief_ids:
        holders = [
            (agent_id, belief_set.beliefs[belief_id].timestamp)
            for agent_id, belief_set in agent_sets.items()
            if belief_id in belief_set
        ]
        if len(holders) < 2:
            results[belief_id] = PropagationTiming(measurable=False)
            continue

        first_agent, first_seen = min(holders, key=lambda h: h[1])
        last_agent, last_seen = max(holders, key=lambda h: h[1])
        elapsed = (last_seen - first_seen).total_seconds()

        results[belief_id] = PropagationTiming(
            measurable=True,
            propagation_time=elapsed,
            meets_expectation=elapsed <= expected_time,
            coverage=len(holders) / len(agent_sets),
            first_agent=first_agent,
            last_agent=last_agent,
            first_seen=first_seen,
            last_seen=last_seen,
        )
    return results
