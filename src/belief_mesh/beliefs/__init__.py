"""Belief data model.

Atoms are immutable assertions; sets are per-agent collections of atoms
with merge, conflict and consistency operations.

Usage:
    from belief_mesh.beliefs import BeliefAtom, BeliefSet, ConflictStrategy

    atom = BeliefAtom.create({"door": "open"}, source="a", confidence=0.9)
    beliefs = BeliefSet("a")
    beliefs.add(atom)
    merged = beliefs.merge(other, ConflictStrategy.NEWEST)
"""

from .atom import BeliefAtom, generate_belief_id
from .belief_set import BeliefSet
from .conflicts import (
    AuthorityRanking,
    ConflictStrategy,
    are_conflicting,
    resolve_all_conflicts,
    resolve_conflict,
    structural_shape,
    validate_belief_set,
)
from .uncertainty import (
    AggregationMethod,
    UncertaintyType,
    aggregate_beliefs,
    beliefs_agree,
    calculate_confidence,
    create_uncertain_belief,
    uncertainty_of,
    update_uncertainty,
)
from .serialization import (
    atom_from_dict,
    atom_to_dict,
    belief_set_from_dict,
    belief_set_to_dict,
    dumps,
    loads,
)

__all__ = [
    # Atoms and sets
    "BeliefAtom",
    "BeliefSet",
    "generate_belief_id",
    # Conflicts
    "AuthorityRanking",
    "ConflictStrategy",
    "are_conflicting",
    "resolve_all_conflicts",
    "resolve_conflict",
    "structural_shape",
    "validate_belief_set",
    # Uncertainty
    "AggregationMethod",
    "UncertaintyType",
    "aggregate_beliefs",
    "beliefs_agree",
    "calculate_confidence",
    "create_uncertain_belief",
    "uncertainty_of",
    "update_uncertainty",
    # Serialization
    "atom_from_dict",
    "atom_to_dict",
    "belief_set_from_dict",
    "belief_set_to_dict",
    "dumps",
    "loads",
]
