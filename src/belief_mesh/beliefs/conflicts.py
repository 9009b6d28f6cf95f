"""Structural conflict detection and pluggable resolution strategies.

Two beliefs conflict when their contents have the same *shape* (every
scalar leaf replaced by a placeholder, containers and mapping keys kept)
but different values. ``{"door": "open"}`` and ``{"door": "closed"}``
conflict; ``{"door": "open"}`` and ``{"window": "open"}`` do not.

Resolution strategies are pure functions of the two atoms, except
PROBABILISTIC which draws from an injectable ``random.Random``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping
import logging
import random

from .atom import BeliefAtom

if TYPE_CHECKING:
    from .belief_set import BeliefSet

logger = logging.getLogger(__name__)

# Placeholder for scalar leaves in a structural shape
LEAF = "<value>"

DEFAULT_AUTHORITY_RANK = 5


class ConflictStrategy(str, Enum):
    """How to pick (or build) a winner between two conflicting beliefs."""

    HIGHEST_CONFIDENCE = "highest_confidence"
    NEWEST = "newest"
    PROBABILISTIC = "probabilistic"
    AUTHORITY = "authority"
    MERGE = "merge"

    @classmethod
    def parse(cls, value: "ConflictStrategy | str | None") -> "ConflictStrategy":
        """Coerce a name to a strategy; unknown or missing → HIGHEST_CONFIDENCE."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            if value is not None:
                logger.warning(
                    f"Unknown conflict strategy {value!r}, using highest_confidence"
                )
            return cls.HIGHEST_CONFIDENCE


@dataclass
class AuthorityRanking:
    """Rank of each source agent for the AUTHORITY strategy.

    Sources not listed get ``default_rank``; with no ranks configured
    every source ties and the first belief wins.
    """

    ranks: dict[str, int] = field(default_factory=dict)
    default_rank: int = DEFAULT_AUTHORITY_RANK

    def rank(self, source: str) -> int:
        return self.ranks.get(source, self.default_rank)


def structural_shape(content: Any) -> Any:
    """Replace every scalar leaf of content with a placeholder.

    Mappings keep their keys, lists and tuples keep their length and
    type, sets collapse to their size.
    """
    if isinstance(content, Mapping):
        return {key: structural_shape(value) for key, value in content.items()}
    if isinstance(content, tuple):
        return tuple(structural_shape(item) for item in content)
    if isinstance(content, list):
        return [structural_shape(item) for item in content]
    if isinstance(content, (set, frozenset)):
        return ("<set>", len(content))
    return LEAF


def are_conflicting(a: BeliefAtom, b: BeliefAtom) -> bool:
    """Same structural shape, different content."""
    if structural_shape(a.content) != structural_shape(b.content):
        return False
    return a.content != b.content


def resolve_conflict(
    a: BeliefAtom,
    b: BeliefAtom,
    strategy: ConflictStrategy | str | None = ConflictStrategy.HIGHEST_CONFIDENCE,
    *,
    rng: random.Random | None = None,
    authority: AuthorityRanking | None = None,
) -> BeliefAtom:
    """Resolve a conflict between two beliefs.

    Args:
        a: First belief (the incumbent, wins most ties)
        b: Second belief (the challenger)
        strategy: Resolution strategy; unknown values fall back to
            HIGHEST_CONFIDENCE
        rng: Random source for PROBABILISTIC
        authority: Source ranking for AUTHORITY

    Returns:
        The winning belief, or a synthesised one for MERGE
    """
    strategy = ConflictStrategy.parse(strategy)

    if strategy is ConflictStrategy.NEWEST:
        return a if a.timestamp > b.timestamp else b

    if strategy is ConflictStrategy.PROBABILISTIC:
        total = a.confidence + b.confidence
        p_a = a.confidence / total if total > 0 else 0.5
        return a if (rng or random).random() < p_a else b

    if strategy is ConflictStrategy.AUTHORITY:
        authority = authority or AuthorityRanking()
        return a if authority.rank(a.source) >= authority.rank(b.source) else b

    if strategy is ConflictStrategy.MERGE:
        return _merge_atoms(a, b)

    return a if a.confidence >= b.confidence else b


def _merge_atoms(a: BeliefAtom, b: BeliefAtom) -> BeliefAtom:
    # First writer's content wins; only confidence, metadata and tags blend
    return BeliefAtom(
        id=a.id,
        content=a.content,
        source=a.source,
        confidence=(a.confidence + b.confidence) / 2,
        timestamp=datetime.now(),
        metadata={**a.metadata, **b.metadata},
        tags=a.tags | b.tags,
    )


def validate_belief_set(
    belief_set: "BeliefSet",
) -> tuple[bool, list[tuple[BeliefAtom, BeliefAtom]]]:
    """Check a belief set for internal conflicts.

    Returns:
        (True, []) when conflict-free, else (False, conflicting pairs)
    """
    conflicts = belief_set.find_conflicts()
    return (not conflicts, conflicts)


def resolve_all_conflicts(
    belief_set: "BeliefSet",
    strategy: ConflictStrategy | str | None = ConflictStrategy.HIGHEST_CONFIDENCE,
    *,
    rng: random.Random | None = None,
    authority: AuthorityRanking | None = None,
) -> "BeliefSet":
    """Resolve every conflicting pair in a belief set.

    Each pair is replaced by its resolution. Pairs whose members were
    already replaced by an earlier resolution are skipped.

    Returns:
        A new belief set; the input is not modified
    """
    result = belief_set.copy()
    for a, b in belief_set.find_conflicts():
        current_a = result.get(a.id)
        current_b = result.get(b.id)
        if current_a is None or current_b is None:
            continue
        if not are_conflicting(current_a, current_b):
            continue
        resolved = resolve_conflict(
            current_a, current_b, strategy, rng=rng, authority=authority
        )
        result.remove(current_a.id)
        result.remove(current_b.id)
        result.add(resolved)
        logger.debug(f"Resolved conflict {a.id} vs {b.id} -> {resolved.id}")
    return result
