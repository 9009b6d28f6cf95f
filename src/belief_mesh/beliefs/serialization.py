"""Dictionary and JSON codecs for beliefs and belief sets.

``*_to_dict`` / ``*_from_dict`` produce plain Python structures. ``dumps``
and ``loads`` go through JSON, tagging tuples and sets so that content
round-trips exactly (JSON alone would turn both into lists).
"""

from datetime import datetime
from typing import Any
import json

from ..exceptions import BeliefError
from .atom import BeliefAtom
from .belief_set import BeliefSet

_TUPLE_TAG = "__tuple__"
_SET_TAG = "__set__"
_MAP_TAG = "__map__"
_TAGS = frozenset((_TUPLE_TAG, _SET_TAG, _MAP_TAG))


def atom_to_dict(atom: BeliefAtom) -> dict[str, Any]:
    """Convert a belief atom to a dictionary."""
    return {
        "id": atom.id,
        "content": atom.content,
        "source": atom.source,
        "confidence": atom.confidence,
        "timestamp": atom.timestamp.isoformat(),
        "metadata": dict(atom.metadata),
        "tags": sorted(atom.tags),
    }


def atom_from_dict(data: dict[str, Any]) -> BeliefAtom:
    """Create a belief atom from a dictionary.

    Raises:
        BeliefError: If required fields are missing or malformed
    """
    try:
        return BeliefAtom(
            id=data["id"],
            content=data["content"],
            source=data["source"],
            confidence=float(data["confidence"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            metadata=dict(data.get("metadata", {})),
            tags=frozenset(data.get("tags", [])),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise BeliefError("Malformed belief data", cause=e) from e


def belief_set_to_dict(belief_set: BeliefSet) -> dict[str, Any]:
    """Convert a belief set to a dictionary."""
    return {
        "agent_id": belief_set.agent_id,
        "beliefs": [atom_to_dict(atom) for atom in belief_set],
        "metadata": dict(belief_set.metadata),
        "last_updated": belief_set.last_updated.isoformat(),
    }


def belief_set_from_dict(data: dict[str, Any]) -> BeliefSet:
    """Create a belief set from a dictionary.

    Raises:
        BeliefError: If required fields are missing or malformed
    """
    try:
        atoms = [atom_from_dict(item) for item in data.get("beliefs", [])]
        return BeliefSet(
            agent_id=data["agent_id"],
            beliefs={atom.id: atom for atom in atoms},
            metadata=dict(data.get("metadata", {})),
            last_updated=datetime.fromisoformat(data["last_updated"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise BeliefError("Malformed belief set data", cause=e) from e


# =============================================================================
# JSON
# =============================================================================


def _encode(value: Any) -> Any:
    if isinstance(value, tuple):
        return {_TUPLE_TAG: [_encode(v) for v in value]}
    if isinstance(value, (set, frozenset)):
        return {_SET_TAG: [_encode(v) for v in value]}
    if isinstance(value, list):
        return [_encode(v) for v in value]
    if isinstance(value, dict):
        if all(isinstance(k, str) for k in value) and _TAGS.isdisjoint(value):
            return {k: _encode(v) for k, v in value.items()}
        # Non-string or reserved keys survive as key/value pairs
        return {_MAP_TAG: [[_encode(k), _encode(v)] for k, v in value.items()]}
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, list):
        return [_decode(v) for v in value]
    if isinstance(value, dict):
        if len(value) == 1:
            if _TUPLE_TAG in value:
                return tuple(_decode(v) for v in value[_TUPLE_TAG])
            if _SET_TAG in value:
                return frozenset(_decode(v) for v in value[_SET_TAG])
            if _MAP_TAG in value:
                return {_decode(k): _decode(v) for k, v in value[_MAP_TAG]}
        return {k: _decode(v) for k, v in value.items()}
    return value


def dumps(obj: BeliefAtom | BeliefSet) -> str:
    """Serialize an atom or belief set to JSON."""
    if isinstance(obj, BeliefSet):
        payload = {"kind": "belief_set", "data": belief_set_to_dict(obj)}
    else:
        payload = {"kind": "belief_atom", "data": atom_to_dict(obj)}
    return json.dumps(_encode(payload))


def loads(text: str) -> BeliefAtom | BeliefSet:
    """Deserialize JSON produced by ``dumps``.

    Raises:
        BeliefError: On malformed input
    """
    try:
        payload = _decode(json.loads(text))
        kind = payload["kind"]
        data = payload["data"]
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        raise BeliefError("Malformed belief JSON", cause=e) from e

    if kind == "belief_set":
        return belief_set_from_dict(data)
    if kind == "belief_atom":
        return atom_from_dict(data)
    raise BeliefError(f"Unknown payload kind: {kind!r}")
