"""
belief-mesh: decentralized belief propagation and convergence for agent populations.

Each agent holds a private set of timestamped, confidence-weighted beliefs.
Agents exchange beliefs through their mailboxes and converge on a shared view
within a bounded time budget, without a central coordinator.

Modules:
- beliefs: Belief atoms, belief sets, conflict resolution, uncertainty
- propagation: Delivery protocol, admission rule, convergence metrics
- consistency: Version tracking, synchronization plans, global alignment,
  verification
- runtime: Asyncio agent actors, registry, whole-population operations
- config: Dataclass configuration with environment and YAML loading
"""

__version__ = "0.1.0"

from .beliefs import BeliefAtom, BeliefSet, ConflictStrategy
from .config import BeliefMeshConfig, load_config
from .consistency import ConsistencyTracker, EnforcementLevel
from .exceptions import (
    BeliefMeshError,
    ConfigurationError,
    BeliefError,
    AggregationError,
    PropagationError,
    AgentUnavailableError,
    PropagationTimeoutError,
    ConsistencyError,
    PlanExecutionError,
)
from .propagation import PropagationMode, propagate_belief
from .runtime import AgentConfig, AgentRegistry, BeliefAgent

__all__ = [
    "__version__",
    # Beliefs
    "BeliefAtom",
    "BeliefSet",
    "ConflictStrategy",
    # Propagation
    "PropagationMode",
    "propagate_belief",
    # Consistency
    "ConsistencyTracker",
    "EnforcementLevel",
    # Runtime
    "AgentConfig",
    "AgentRegistry",
    "BeliefAgent",
    # Config
    "BeliefMeshConfig",
    "load_config",
    # Exceptions
    "BeliefMeshError",
    "ConfigurationError",
    "BeliefError",
    "AggregationError",
    "PropagationError",
    "AgentUnavailableError",
    "PropagationTimeoutError",
    "ConsistencyError",
    "PlanExecutionError",
]
