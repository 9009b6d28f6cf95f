"""Uncertainty representation and aggregation for beliefs.

Beliefs can carry one of four uncertainty models in their metadata:

- probabilistic: ``probability``
- fuzzy: ``membership``
- dempster_shafer: ``belief`` (lower bound) and ``plausibility`` (upper bound)
- possibilistic: ``necessity``

The atom's confidence is derived from the model's primary field (0.5 when
absent). Aggregation combines several beliefs about the same content into
one. The Dempster-Shafer combination here is a simplified product rule and
is not normalised for conflicting mass.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Mapping, Sequence
import logging

from ..exceptions import AggregationError
from .atom import BeliefAtom

logger = logging.getLogger(__name__)

UNCERTAINTY_TYPE_KEY = "uncertainty_type"
UNCERTAINTY_VALUES_KEY = "uncertainty_values"

DEFAULT_CONFIDENCE = 0.5


class UncertaintyType(str, Enum):
    """Supported uncertainty models."""

    PROBABILISTIC = "probabilistic"
    FUZZY = "fuzzy"
    DEMPSTER_SHAFER = "dempster_shafer"
    POSSIBILISTIC = "possibilistic"


class AggregationMethod(str, Enum):
    """How multiple beliefs are combined."""

    WEIGHTED_AVERAGE = "weighted_average"
    AVERAGE = "average"
    DEMPSTER_SHAFER = "dempster_shafer"
    MAX_CONFIDENCE = "max_confidence"


# Field that carries the confidence for each model
_CONFIDENCE_FIELD = {
    UncertaintyType.PROBABILISTIC: "probability",
    UncertaintyType.FUZZY: "membership",
    UncertaintyType.DEMPSTER_SHAFER: "belief",
    UncertaintyType.POSSIBILISTIC: "necessity",
}


def _parse_type(value: Any) -> UncertaintyType | None:
    if value is None:
        return None
    try:
        return UncertaintyType(value)
    except ValueError:
        return None


def uncertainty_of(atom: BeliefAtom) -> tuple[UncertaintyType | None, dict[str, float]]:
    """Read the uncertainty model and values stored on an atom."""
    utype = _parse_type(atom.metadata.get(UNCERTAINTY_TYPE_KEY))
    values = dict(atom.metadata.get(UNCERTAINTY_VALUES_KEY) or {})
    return utype, values


def calculate_confidence(
    uncertainty_type: UncertaintyType | str | None,
    values: Mapping[str, float],
) -> float:
    """Confidence implied by an uncertainty model's values."""
    utype = _parse_type(uncertainty_type)
    if utype is None:
        return DEFAULT_CONFIDENCE
    return float(values.get(_CONFIDENCE_FIELD[utype], DEFAULT_CONFIDENCE))


def create_uncertain_belief(
    content: Any,
    source: str,
    uncertainty_type: UncertaintyType | str,
    values: Mapping[str, float],
    *,
    metadata: Mapping[str, Any] | None = None,
    tags: Iterable[str] | None = None,
    belief_id: str | None = None,
) -> BeliefAtom:
    """Create a belief whose confidence comes from an uncertainty model.

    Args:
        content: Belief content
        source: Authoring agent id
        uncertainty_type: Model name
        values: Model values (e.g. {"probability": 0.8})
        metadata: Extra annotations (uncertainty keys take precedence)
        tags: Optional labels
        belief_id: Explicit id

    Returns:
        The new atom
    """
    utype = UncertaintyType(uncertainty_type)
    merged = {
        **(metadata or {}),
        UNCERTAINTY_TYPE_KEY: utype.value,
        UNCERTAINTY_VALUES_KEY: dict(values),
    }
    return BeliefAtom.create(
        content,
        source,
        calculate_confidence(utype, values),
        metadata=merged,
        tags=tags,
        belief_id=belief_id,
    )


def update_uncertainty(atom: BeliefAtom, new_values: Mapping[str, float]) -> BeliefAtom:
    """Merge new uncertainty values into an atom and recompute confidence."""
    utype, values = uncertainty_of(atom)
    values.update(new_values)
    updated = atom.with_metadata({UNCERTAINTY_VALUES_KEY: values})
    if utype is None:
        return updated
    return updated.with_confidence(calculate_confidence(utype, values))


# =============================================================================
# Aggregation
# =============================================================================


def aggregate_beliefs(
    atoms: Sequence[BeliefAtom],
    method: AggregationMethod | str = AggregationMethod.WEIGHTED_AVERAGE,
) -> BeliefAtom:
    """Aggregate several beliefs about the same content into one.

    Args:
        atoms: Beliefs to combine; the first is the template for content
            and source
        method: Aggregation method (unknown names use weighted average)

    Returns:
        Aggregated atom. It keeps the shared id when all inputs have the
        same id; MAX_CONFIDENCE returns the winning input unchanged.

    Raises:
        AggregationError: If atoms is empty
    """
    if not atoms:
        raise AggregationError("Cannot aggregate an empty list of beliefs")

    try:
        method = AggregationMethod(method)
    except ValueError:
        logger.warning(f"Unknown aggregation method {method!r}, using weighted_average")
        method = AggregationMethod.WEIGHTED_AVERAGE

    if method is AggregationMethod.MAX_CONFIDENCE:
        return max(atoms, key=lambda atom: atom.confidence)

    if method is AggregationMethod.DEMPSTER_SHAFER:
        all_values = [uncertainty_of(atom)[1] for atom in atoms]
        combined = {
            "belief": _product(v.get("belief", 0.5) for v in all_values),
            "plausibility": min(1.0, _product(v.get("plausibility", 0.5) for v in all_values)),
        }
        return _build_aggregate(atoms, method, UncertaintyType.DEMPSTER_SHAFER, combined)

    weights = [atom.confidence for atom in atoms]
    if method is AggregationMethod.WEIGHTED_AVERAGE and sum(weights) == 0:
        method = AggregationMethod.AVERAGE
    if method is AggregationMethod.AVERAGE:
        weights = [1.0] * len(atoms)

    utype = uncertainty_of(atoms[0])[0]
    all_values = [uncertainty_of(atom)[1] for atom in atoms]
    keys = sorted({key for values in all_values for key in values})
    total = sum(weights)
    averaged = {
        key: sum(values.get(key, 0) * w for values, w in zip(all_values, weights)) / total
        for key in keys
    }

    confidence = None
    if utype is None:
        # No model to derive from: average the raw confidences instead
        confidence = sum(atom.confidence * w for atom, w in zip(atoms, weights)) / total

    return _build_aggregate(atoms, method, utype, averaged, confidence)


def _product(values: Iterable[float]) -> float:
    result = 1.0
    for value in values:
        result *= value
    return result


def _build_aggregate(
    atoms: Sequence[BeliefAtom],
    method: AggregationMethod,
    utype: UncertaintyType | None,
    values: dict[str, float],
    confidence: float | None = None,
) -> BeliefAtom:
    first = atoms[0]
    shared_id = first.id if all(atom.id == first.id for atom in atoms) else None
    tags = frozenset().union(*(atom.tags for atom in atoms))
    metadata: dict[str, Any] = {
        "aggregation_method": method.value,
        "source_beliefs": [atom.id for atom in atoms],
    }

    if utype is not None:
        return create_uncertain_belief(
            first.content,
            first.source,
            utype,
            values,
            metadata=metadata,
            tags=tags,
            belief_id=shared_id,
        )

    if values:
        metadata[UNCERTAINTY_VALUES_KEY] = values
    return BeliefAtom.create(
        first.content,
        first.source,
        confidence if confidence is not None else DEFAULT_CONFIDENCE,
        metadata=metadata,
        tags=tags,
        belief_id=shared_id,
    )


# =============================================================================
# Agreement
# =============================================================================


def beliefs_agree(a: BeliefAtom, b: BeliefAtom, threshold: float = 0.7) -> bool:
    """Decide whether two beliefs agree.

    Without uncertainty models on both sides, agreement is plain content
    equality. Otherwise the contents must match and the model values must
    be close:
    - probabilistic/fuzzy: |difference| < 1 - threshold
    - Dempster-Shafer: interval overlap / interval union >= threshold
    - mismatched models: |confidence difference| < 1 - threshold
    """
    type_a, values_a = uncertainty_of(a)
    type_b, values_b = uncertainty_of(b)

    if type_a is None or type_b is None:
        return a.content == b.content

    if a.content != b.content:
        return False

    if type_a is type_b and type_a in (UncertaintyType.PROBABILISTIC, UncertaintyType.FUZZY):
        key = _CONFIDENCE_FIELD[type_a]
        return abs(values_a.get(key, 0.5) - values_b.get(key, 0.5)) < (1 - threshold)

    if type_a is type_b is UncertaintyType.DEMPSTER_SHAFER:
        lower_a, upper_a = values_a.get("belief", 0.0), values_a.get("plausibility", 1.0)
        lower_b, upper_b = values_b.get("belief", 0.0), values_b.get("plausibility", 1.0)
        overlap_lower = max(lower_a, lower_b)
        overlap_upper = min(upper_a, upper_b)
        if overlap_upper < overlap_lower:
            return False
        union = max(upper_a, upper_b) - min(lower_a, lower_b)
        if union == 0:
            # Identical point intervals
            return True
        return (overlap_upper - overlap_lower) / union >= threshold

    return abs(a.confidence - b.confidence) < (1 - threshold)
