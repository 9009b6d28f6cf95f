"""Mailbox messages understood by a BeliefAgent.

Messages with a ``reply`` future are requests: the agent resolves the
future once the message has been handled (or sets the exception raised
while handling it). Messages without one are fire-and-forget.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence
import asyncio

from ..beliefs.atom import BeliefAtom
from ..beliefs.belief_set import BeliefSet
from ..propagation.protocol import BeliefUpdate, PropagationMode


@dataclass
class AuthorBelief:
    """Create a belief authored by the receiving agent."""

    content: Any
    confidence: float
    metadata: Mapping[str, Any] | None = None
    tags: Sequence[str] | None = None
    belief_id: str | None = None
    propagate: bool = False
    reply: asyncio.Future | None = None


@dataclass
class IngestBelief:
    """Insert an externally authored atom as-is."""

    atom: BeliefAtom
    reply: asyncio.Future | None = None


@dataclass
class GetBeliefSet:
    reply: asyncio.Future | None = None


@dataclass
class GetBelief:
    belief_id: str
    reply: asyncio.Future | None = None


@dataclass
class QueryBeliefs:
    predicate: Callable[[BeliefAtom], bool]
    reply: asyncio.Future | None = None


@dataclass
class ReplaceBeliefSet:
    """Adopt a whole new belief set (ownership moves to the receiver)."""

    belief_set: BeliefSet
    reply: asyncio.Future | None = None


@dataclass
class MergeBeliefSet:
    """Merge a neighbor's set into the current one after a sync.

    ``convergence_score`` is measured by the sync that produced the set.
    """

    belief_set: BeliefSet
    convergence_score: float
    reply: asyncio.Future | None = None


@dataclass
class SyncFailed:
    """A neighbor sync could not complete."""

    target: Any
    reason: str
    reply: asyncio.Future | None = None


@dataclass
class SetNeighbors:
    neighbors: list = field(default_factory=list)
    reply: asyncio.Future | None = None


@dataclass
class UpdateConfig:
    updates: Mapping[str, Any]
    reply: asyncio.Future | None = None


@dataclass
class PropagateBelief:
    """Send one of the receiver's beliefs to other agents."""

    belief_id: str
    targets: list
    mode: PropagationMode = PropagationMode.ASYNC
    timeout: float | None = None
    reply: asyncio.Future | None = None


@dataclass
class SyncNow:
    """Synchronize with every neighbor."""

    reply: asyncio.Future | None = None


@dataclass
class SyncWith:
    """Synchronize with one specific agent."""

    target: Any
    reply: asyncio.Future | None = None


@dataclass
class GetMetrics:
    reply: asyncio.Future | None = None


__all__ = [
    "AuthorBelief",
    "BeliefUpdate",
    "GetBelief",
    "GetBeliefSet",
    "GetMetrics",
    "IngestBelief",
    "MergeBeliefSet",
    "PropagateBelief",
    "QueryBeliefs",
    "ReplaceBeliefSet",
    "SetNeighbors",
    "SyncFailed",
    "SyncNow",
    "SyncWith",
    "UpdateConfig",
]
