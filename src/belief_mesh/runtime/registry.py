"""Agent registry.

Resolves agent references (an agent instance or its id) and manages the
lifecycle of a group of agents.
"""

from __future__ import annotations

from typing import Iterable, Iterator
import asyncio
import logging
import random

from ..exceptions import AgentUnavailableError, ConfigurationError
from .agent import AgentConfig, AgentState, BeliefAgent

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Registry of belief agents keyed by id.

    Example:
        ```python
        registry = AgentRegistry()
        for name in ("a", "b", "c"):
            registry.create_agent(name, AgentConfig(auto_sync=False))
        await registry.start_all()
        ...
        await registry.stop_all()
        ```
    """

    def __init__(self) -> None:
        self._agents: dict[str, BeliefAgent] = {}

    def register(self, agent: BeliefAgent) -> None:
        """Register an agent.

        Raises:
            ConfigurationError: If another agent already uses the id
        """
        existing = self._agents.get(agent.agent_id)
        if existing is not None and existing is not agent:
            raise ConfigurationError(f"Agent id '{agent.agent_id}' is already registered")
        self._agents[agent.agent_id] = agent
        logger.debug(f"Registered agent: {agent.agent_id}")

    def unregister(self, agent_id: str) -> bool:
        """Remove an agent; returns whether it was registered."""
        if self._agents.pop(agent_id, None) is None:
            return False
        logger.debug(f"Unregistered agent: {agent_id}")
        return True

    def create_agent(
        self,
        agent_id: str,
        config: AgentConfig | None = None,
        *,
        neighbors: Iterable[BeliefAgent | str] = (),
        rng: random.Random | None = None,
    ) -> BeliefAgent:
        """Create and register an agent bound to this registry."""
        agent = BeliefAgent(agent_id, config, neighbors=neighbors, registry=self, rng=rng)
        self.register(agent)
        return agent

    def get(self, agent_id: str) -> BeliefAgent | None:
        return self._agents.get(agent_id)

    def resolve(self, ref: BeliefAgent | str) -> BeliefAgent:
        """Turn an agent or agent id into an agent.

        Raises:
            AgentUnavailableError: If the id is not registered
        """
        if isinstance(ref, BeliefAgent):
            return ref
        agent = self._agents.get(ref)
        if agent is None:
            raise AgentUnavailableError(ref)
        return agent

    async def start_all(self) -> None:
        for agent in self._agents.values():
            if agent.state == AgentState.INITIALIZED:
                await agent.start()

    async def stop_all(self) -> None:
        await asyncio.gather(*(agent.stop() for agent in self._agents.values()))

    @property
    def agents(self) -> list[BeliefAgent]:
        return list(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def __iter__(self) -> Iterator[BeliefAgent]:
        return iter(list(self._agents.values()))
