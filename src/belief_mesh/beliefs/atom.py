"""Belief atoms: immutable, versioned assertion records.

A BeliefAtom is a single timestamped, confidence-weighted assertion made
by a source agent. Atoms are value objects: every "update" returns a new
atom with a refreshed timestamp, and the original is never touched.

Example:
    ```python
    atom = BeliefAtom.create({"door": "open"}, source="agent_a", confidence=0.8)
    raised = atom.with_confidence(0.9)
    tagged = raised.with_tags({"sensor"})
    ```
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterable, Mapping
import hashlib
import itertools
import json

# Process-wide sequence so ids never collide inside one millisecond
_id_sequence = itertools.count()


def _canonical(value: Any) -> Any:
    """Render content into a JSON-stable structure for fingerprinting."""
    if isinstance(value, Mapping):
        return {"map": sorted((repr(k), _canonical(v)) for k, v in value.items())}
    if isinstance(value, tuple):
        return {"tuple": [_canonical(v) for v in value]}
    if isinstance(value, list):
        return {"list": [_canonical(v) for v in value]}
    if isinstance(value, (set, frozenset)):
        return {"set": sorted(repr(v) for v in value)}
    return repr(value)


def _fingerprint(value: Any) -> str:
    rendered = json.dumps(_canonical(value), sort_keys=True)
    return hashlib.sha256(rendered.encode("utf-8")).hexdigest()[:8]


def generate_belief_id(content: Any, source: str, created_at: datetime | None = None) -> str:
    """Generate a unique id for a belief.

    Combines content and source fingerprints with the creation time in
    milliseconds and a monotonic sequence number.

    Args:
        content: Belief content
        source: Authoring agent id
        created_at: Creation time (defaults to now)

    Returns:
        Id of the form ``belief_<content>_<source>_<millis>_<seq>``
    """
    created_at = created_at or datetime.now()
    millis = int(created_at.timestamp() * 1000)
    return (
        f"belief_{_fingerprint(content)}_{_fingerprint(source)}"
        f"_{millis}_{next(_id_sequence)}"
    )


@dataclass(frozen=True)
class BeliefAtom:
    """An atomic belief statement.

    Attributes:
        id: Unique identifier (see generate_belief_id)
        content: Arbitrary nested data (dict, list, tuple or scalar)
        source: Id of the agent that authored the belief
        confidence: Confidence in the belief, nominally 0-1 (not clamped here)
        timestamp: When this version of the belief was created
        metadata: Free-form key/value annotations
        tags: Set of labels
    """

    id: str
    content: Any
    source: str
    confidence: float
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)
    tags: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def create(
        cls,
        content: Any,
        source: str,
        confidence: float,
        *,
        metadata: Mapping[str, Any] | None = None,
        tags: Iterable[str] | None = None,
        belief_id: str | None = None,
        timestamp: datetime | None = None,
    ) -> "BeliefAtom":
        """Create a new belief atom.

        Args:
            content: Belief content
            source: Authoring agent id
            confidence: Confidence (0-1)
            metadata: Optional annotations
            tags: Optional labels
            belief_id: Explicit id, used when several agents assert about
                the same proposition
            timestamp: Explicit creation time (defaults to now)

        Returns:
            The new atom
        """
        created_at = timestamp or datetime.now()
        return cls(
            id=belief_id or generate_belief_id(content, source, created_at),
            content=content,
            source=source,
            confidence=confidence,
            timestamp=created_at,
            metadata=dict(metadata or {}),
            tags=frozenset(tags or ()),
        )

    def with_confidence(self, confidence: float) -> "BeliefAtom":
        """Return a copy with a new confidence and refreshed timestamp."""
        return replace(self, confidence=confidence, timestamp=datetime.now())

    def with_metadata(self, updates: Mapping[str, Any]) -> "BeliefAtom":
        """Return a copy with metadata merged in and refreshed timestamp."""
        merged = {**self.metadata, **updates}
        return replace(self, metadata=merged, timestamp=datetime.now())

    def with_tags(self, added: Iterable[str]) -> "BeliefAtom":
        """Return a copy with tags added and refreshed timestamp."""
        return replace(self, tags=self.tags | frozenset(added), timestamp=datetime.now())

    def __repr__(self) -> str:
        return (
            f"BeliefAtom(id={self.id!r}, content={self.content!r}, "
            f"source={self.source!r}, confidence={self.confidence:.2f})"
        )
