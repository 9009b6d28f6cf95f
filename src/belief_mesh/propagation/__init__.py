"""Moving beliefs between agents and measuring how far they agree."""

from .protocol import (
    AdmissionStatus,
    BeliefReceiver,
    BeliefUpdate,
    PropagationMode,
    PropagationResult,
    TargetOutcome,
    TargetStatus,
    admit_update,
    propagate_belief,
    synchronize_beliefs,
)
from .convergence import (
    belief_set_similarity,
    detect_partition,
    similarity_matrix,
    verify_convergence,
)

__all__ = [
    "AdmissionStatus",
    "BeliefReceiver",
    "BeliefUpdate",
    "PropagationMode",
    "PropagationResult",
    "TargetOutcome",
    "TargetStatus",
    "admit_update",
    "propagate_belief",
    "synchronize_beliefs",
    "belief_set_similarity",
    "detect_partition",
    "similarity_matrix",
    "verify_convergence",
]
