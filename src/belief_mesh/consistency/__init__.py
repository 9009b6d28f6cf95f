"""Consistency management over populations of belief sets.

- tracker: versions, sync times and convergence history
- planner: bounded-time synchronization plans
- alignment: global state construction and local-global alignment
- verification: composite consistency audit
"""

from .tracker import ConsistencyTracker, ConvergenceCheck
from .planner import (
    BatchResult,
    BoundedConsistencyResult,
    ConsistencyEstimate,
    ConsistencyReason,
    Continue,
    PlanBatch,
    PlanExecutionOptions,
    PlanProgress,
    PlanProgressUpdate,
    PlanResult,
    Stop,
    SynchronizationPlan,
    create_plan,
    estimate_time_to_consistency,
    execute_plan,
    verify_bounded_consistency,
)
from .alignment import (
    GLOBAL_AGENT_ID,
    AgentAlignment,
    AgentAlignmentResult,
    AlignmentExecution,
    AlignmentPlan,
    AlignmentProgressUpdate,
    EnforcementLevel,
    align_with_global,
    alignment_score,
    construct_global_state,
    create_alignment_plan,
    execute_alignment_plan,
    identify_misaligned_agents,
)
from .verification import (
    BeliefConsistency,
    ConflictReport,
    PropagationTiming,
    VerificationResult,
    verify_belief_consistency,
    verify_consistency,
    verify_propagation_timing,
)

__all__ = [
    # Tracker
    "ConsistencyTracker",
    "ConvergenceCheck",
    # Planner
    "BatchResult",
    "BoundedConsistencyResult",
    "ConsistencyEstimate",
    "ConsistencyReason",
    "Continue",
    "PlanBatch",
    "PlanExecutionOptions",
    "PlanProgress",
    "PlanProgressUpdate",
    "PlanResult",
    "Stop",
    "SynchronizationPlan",
    "create_plan",
    "estimate_time_to_consistency",
    "execute_plan",
    "verify_bounded_consistency",
    # Alignment
    "GLOBAL_AGENT_ID",
    "AgentAlignment",
    "AgentAlignmentResult",
    "AlignmentExecution",
    "AlignmentPlan",
    "AlignmentProgressUpdate",
    "EnforcementLevel",
    "align_with_global",
    "alignment_score",
    "construct_global_state",
    "create_alignment_plan",
    "execute_alignment_plan",
    "identify_misaligned_agents",
    # Verification
    "BeliefConsistency",
    "ConflictReport",
    "PropagationTiming",
    "VerificationResult",
    "verify_belief_consistency",
    "verify_consistency",
    "verify_propagation_timing",
]
