"""Standard exception hierarchy for belief-mesh.

All belief-mesh exceptions inherit from BeliefMeshError, making it easy
to catch all library-specific errors.

Protocol outcomes (rejected updates, per-target timeouts, estimates that
cannot be made) are reported as result values, not raised. These
exceptions mark programming errors and unusable input.

Exception Hierarchy:
    BeliefMeshError (base)
    ├── ConfigurationError - Invalid configuration
    ├── BeliefError - Belief model errors
    │   └── AggregationError - Cannot aggregate the given beliefs
    ├── PropagationError - Base for cross-agent delivery errors
    │   ├── AgentUnavailableError - Target agent is not running
    │   └── PropagationTimeoutError - Target did not answer in time
    └── ConsistencyError - Base for consistency management errors
        └── PlanExecutionError - Internal fault while executing a plan
"""


class BeliefMeshError(Exception):
    """Base exception for all belief-mesh errors.

    Catch this to handle any library-specific exception:
        try:
            belief_set = await agent.get_belief_set()
        except BeliefMeshError as e:
            logger.error(f"Belief mesh error: {e}")
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        if self.cause:
            return f"{super().__str__()} (caused by: {self.cause})"
        return super().__str__()


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(BeliefMeshError):
    """Invalid configuration.

    Raised when BeliefMeshConfig or AgentConfig has invalid settings,
    unknown keys, or values outside their allowed range.
    """

    pass


# =============================================================================
# Belief Errors
# =============================================================================


class BeliefError(BeliefMeshError):
    """Belief model error.

    Raised when:
    - A belief cannot be constructed from serialized data
    - A confidence value is rejected by an authoring surface
    """

    pass


class AggregationError(BeliefError):
    """Cannot aggregate the given beliefs (e.g. an empty list)."""

    pass


# =============================================================================
# Propagation Errors
# =============================================================================


class PropagationError(BeliefMeshError):
    """Base exception for errors delivering beliefs between agents."""

    def __init__(
        self,
        message: str,
        agent_id: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause)
        self.agent_id = agent_id


class AgentUnavailableError(PropagationError):
    """Target agent is not running and cannot accept messages."""

    def __init__(self, agent_id: str, cause: Exception | None = None):
        super().__init__(f"Agent '{agent_id}' is not available", agent_id, cause)


class PropagationTimeoutError(PropagationError):
    """Target agent did not answer within the allowed time."""

    def __init__(self, agent_id: str, timeout: float):
        super().__init__(
            f"Agent '{agent_id}' did not respond within {timeout}s", agent_id
        )
        self.timeout = timeout


# =============================================================================
# Consistency Errors
# =============================================================================


class ConsistencyError(BeliefMeshError):
    """Base exception for consistency management errors."""

    pass


class PlanExecutionError(ConsistencyError):
    """Internal fault while executing a synchronization plan.

    The plan executor never raises this; it is attached to the returned
    PlanResult so one bad batch does not take down the caller.
    """

    def __init__(
        self,
        message: str,
        batch_id: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause)
        self.batch_id = batch_id
