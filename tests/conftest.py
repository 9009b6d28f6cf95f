"""Pytest configuration for belief-mesh tests."""

import random
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any

import pytest

from belief_mesh.beliefs import BeliefAtom, BeliefSet
from belief_mesh.runtime import AgentConfig, AgentRegistry

# Fixed reference time so timestamp ordering in tests is explicit
BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


@pytest.fixture
def rng():
    """Seeded random source for stochastic strategies."""
    return random.Random(42)


# =============================================================================
# Belief Fixtures
# =============================================================================


@pytest.fixture
def make_atom():
    """Factory for atoms with an explicit id and a timestamp offset in seconds.

    Usage:
        def test_something(make_atom):
            atom = make_atom("b1", {"door": "open"}, 0.8, at=2)
    """

    def factory(
        belief_id: str,
        content: Any,
        confidence: float = 0.8,
        *,
        source: str = "agent_a",
        at: float = 0,
        metadata: dict[str, Any] | None = None,
        tags: set[str] | None = None,
    ) -> BeliefAtom:
        return BeliefAtom.create(
            content,
            source,
            confidence,
            metadata=metadata,
            tags=tags,
            belief_id=belief_id,
            timestamp=BASE_TIME + timedelta(seconds=at),
        )

    return factory


@pytest.fixture
def make_set():
    """Factory for belief sets built from atoms."""

    def factory(agent_id: str, *atoms: BeliefAtom) -> BeliefSet:
        belief_set = BeliefSet(agent_id)
        for atom in atoms:
            belief_set.add(atom)
        return belief_set

    return factory


# =============================================================================
# Runtime Fixtures
# =============================================================================


@pytest.fixture
def agent_population():
    """Async context manager that runs a group of agents.

    Agents get auto_sync disabled so tests control every sync round.

    Usage:
        async def test_something(agent_population):
            async with agent_population("a", "b") as (registry, agents):
                ...
    """

    @asynccontextmanager
    async def population(*agent_ids: str, config: AgentConfig | None = None, rng=None):
        registry = AgentRegistry()
        agents = [
            registry.create_agent(agent_id, config or AgentConfig(auto_sync=False), rng=rng)
            for agent_id in agent_ids
        ]
        await registry.start_all()
        try:
            yield registry, agents
        finally:
            await registry.stop_all()

    return population
