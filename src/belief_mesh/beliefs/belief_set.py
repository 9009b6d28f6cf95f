"""Per-agent belief sets.

A BeliefSet is the collection of beliefs owned by exactly one agent.
``add``/``update``/``remove`` change the set in place; ``merge`` and
``copy`` return new sets so a set can be handed to another actor without
sharing a writable reference.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterator
import logging
import random

from .atom import BeliefAtom
from .conflicts import (
    AuthorityRanking,
    ConflictStrategy,
    are_conflicting,
    resolve_conflict,
)

logger = logging.getLogger(__name__)


@dataclass
class BeliefSet:
    """Beliefs held by one agent, keyed by belief id.

    Attributes:
        agent_id: Owning agent
        beliefs: Mapping of belief id to atom (key always equals atom.id)
        metadata: Free-form annotations
        last_updated: Bumped on every structural change
    """

    agent_id: str
    beliefs: dict[str, BeliefAtom] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)
    last_updated: datetime = field(default_factory=datetime.now, compare=False)

    # =========================================================================
    # Structural operations
    # =========================================================================

    def add(self, atom: BeliefAtom) -> None:
        """Insert or replace a belief by id."""
        self.beliefs[atom.id] = atom
        self.last_updated = datetime.now()

    def update(self, atom: BeliefAtom) -> None:
        """Replace a belief by id (inserts if absent)."""
        self.add(atom)

    def remove(self, belief_id: str) -> None:
        """Remove a belief; no-op if it is not present."""
        if self.beliefs.pop(belief_id, None) is not None:
            self.last_updated = datetime.now()

    def get(self, belief_id: str) -> BeliefAtom | None:
        return self.beliefs.get(belief_id)

    def filter(self, predicate: Callable[[BeliefAtom], bool]) -> list[BeliefAtom]:
        """Return all beliefs matching a predicate."""
        return [atom for atom in self.beliefs.values() if predicate(atom)]

    def ids(self) -> set[str]:
        return set(self.beliefs)

    def copy(self, agent_id: str | None = None) -> "BeliefSet":
        """Independent copy, optionally re-owned by another agent."""
        return BeliefSet(
            agent_id=agent_id if agent_id is not None else self.agent_id,
            beliefs=dict(self.beliefs),
            metadata=dict(self.metadata),
            last_updated=self.last_updated,
        )

    def __len__(self) -> int:
        return len(self.beliefs)

    def __contains__(self, belief_id: object) -> bool:
        return belief_id in self.beliefs

    def __iter__(self) -> Iterator[BeliefAtom]:
        return iter(self.beliefs.values())

    # =========================================================================
    # Conflicts and merging
    # =========================================================================

    def find_conflicts(self) -> list[tuple[BeliefAtom, BeliefAtom]]:
        """Find all unordered pairs of conflicting beliefs.

        O(n²) pairwise scan.
        """
        atoms = list(self.beliefs.values())
        conflicts = []
        for i, a in enumerate(atoms):
            for b in atoms[i + 1:]:
                if a.id != b.id and are_conflicting(a, b):
                    conflicts.append((a, b))
        return conflicts

    def merge(
        self,
        source: "BeliefSet",
        strategy: ConflictStrategy | str | None = ConflictStrategy.HIGHEST_CONFIDENCE,
        *,
        rng: random.Random | None = None,
        authority: AuthorityRanking | None = None,
    ) -> "BeliefSet":
        """Merge another set into a copy of this one.

        For each belief in ``source``:
        - absent here: insert it
        - present and conflicting: store the strategy's resolution
        - present, not conflicting: keep whichever has strictly higher
          confidence, ties keep ours

        Args:
            source: Set to merge from
            strategy: Conflict resolution strategy
            rng: Random source for PROBABILISTIC
            authority: Source ranking for AUTHORITY

        Returns:
            New set owned by this set's agent
        """
        result = self.copy()
        resolved = 0

        for belief_id, incoming in source.beliefs.items():
            existing = result.beliefs.get(belief_id)
            if existing is None:
                result.beliefs[belief_id] = incoming
            elif are_conflicting(existing, incoming):
                winner = resolve_conflict(
                    existing, incoming, strategy, rng=rng, authority=authority
                )
                result.beliefs[belief_id] = winner
                resolved += 1
            elif incoming.confidence > existing.confidence:
                result.beliefs[belief_id] = incoming

        result.last_updated = datetime.now()

        if resolved:
            logger.debug(
                f"Merged {source.agent_id} into {self.agent_id}: "
                f"{resolved} conflicts resolved ({ConflictStrategy.parse(strategy).value})"
            )
        return result

    def consistency_score(self) -> float:
        """1 - conflicts / C(n, 2); 1.0 for zero or one belief."""
        n = len(self.beliefs)
        if n <= 1:
            return 1.0
        max_conflicts = n * (n - 1) // 2
        return 1.0 - len(self.find_conflicts()) / max_conflicts
