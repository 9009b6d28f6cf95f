"""Tests for AgentRegistry."""

import pytest

from belief_mesh.exceptions import AgentUnavailableError, ConfigurationError
from belief_mesh.runtime import AgentConfig, AgentRegistry, AgentState, BeliefAgent


class TestRegistration:
    """Tests for registering and resolving agents."""

    @pytest.mark.asyncio
    async def test_create_agent_registers(self):
        registry = AgentRegistry()
        agent = registry.create_agent("a", AgentConfig(auto_sync=False))

        assert "a" in registry
        assert len(registry) == 1
        assert registry.get("a") is agent
        assert registry.agents == [agent]
        assert list(registry) == [agent]

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self):
        registry = AgentRegistry()
        registry.create_agent("a")

        with pytest.raises(ConfigurationError):
            registry.register(BeliefAgent("a"))

    @pytest.mark.asyncio
    async def test_reregistering_same_agent_is_allowed(self):
        registry = AgentRegistry()
        agent = registry.create_agent("a")
        registry.register(agent)
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_unregister(self):
        registry = AgentRegistry()
        registry.create_agent("a")

        assert registry.unregister("a") is True
        assert registry.unregister("a") is False
        assert registry.get("a") is None

    @pytest.mark.asyncio
    async def test_resolve(self):
        registry = AgentRegistry()
        agent = registry.create_agent("a")
        outsider = BeliefAgent("outsider")

        assert registry.resolve("a") is agent
        assert registry.resolve(outsider) is outsider
        with pytest.raises(AgentUnavailableError) as exc_info:
            registry.resolve("ghost")
        assert exc_info.value.agent_id == "ghost"


class TestLifecycle:
    """Tests for starting and stopping all agents."""

    @pytest.mark.asyncio
    async def test_start_and_stop_all(self):
        registry = AgentRegistry()
        agents = [registry.create_agent(name, AgentConfig(auto_sync=False)) for name in "abc"]

        await registry.start_all()
        assert all(agent.state is AgentState.ACTIVE for agent in agents)

        await registry.stop_all()
        assert all(agent.state is AgentState.STOPPED for agent in agents)

    @pytest.mark.asyncio
    async def test_start_all_skips_stopped_agents(self):
        registry = AgentRegistry()
        first = registry.create_agent("first", AgentConfig(auto_sync=False))
        await registry.start_all()
        await first.stop()

        second = registry.create_agent("second", AgentConfig(auto_sync=False))
        await registry.start_all()
        try:
            assert first.state is AgentState.STOPPED
            assert second.is_running
        finally:
            await registry.stop_all()
