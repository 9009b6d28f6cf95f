"""Agent runtime: one asyncio actor per agent, plus population operations."""

from .agent import (
    DEFAULT_REQUEST_TIMEOUT,
    AgentConfig,
    AgentMetrics,
    AgentState,
    BeliefAgent,
)
from .registry import AgentRegistry
from .population import (
    AlignmentSummary,
    align_with_global,
    collect_belief_sets,
    ensure_consistency,
    global_belief_state,
    verify_consistency,
)

__all__ = [
    "DEFAULT_REQUEST_TIMEOUT",
    "AgentConfig",
    "AgentMetrics",
    "AgentRegistry",
    "AgentState",
    "AlignmentSummary",
    "BeliefAgent",
    "align_with_global",
    "collect_belief_sets",
    "ensure_consistency",
    "global_belief_state",
    "verify_consistency",
]
