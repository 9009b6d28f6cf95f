"""Tests for synchronization plans and bounded consistency."""

import time
from datetime import datetime, timedelta

import pytest

from belief_mesh.beliefs import BeliefSet
from belief_mesh.consistency import (
    ConsistencyReason,
    ConsistencyTracker,
    ConvergenceCheck,
    PlanExecutionOptions,
    create_plan,
    estimate_time_to_consistency,
    execute_plan,
    verify_bounded_consistency,
)
from belief_mesh.exceptions import PlanExecutionError


def agent_ids(count):
    return [f"a{i}" for i in range(1, count + 1)]


@pytest.fixture
def unique_sets(make_atom):
    """One belief set per agent, each holding a belief nobody else has."""

    def factory(ids):
        sets = {}
        for agent_id in ids:
            belief_set = BeliefSet(agent_id)
            belief_set.add(make_atom(f"fact_{agent_id}", agent_id, source=agent_id))
            sets[agent_id] = belief_set
        return sets

    return factory


@pytest.fixture
def no_sleep():
    return PlanExecutionOptions(time_scale=0)


class TestCreatePlan:
    """Tests for create_plan."""

    def test_ten_agents_batch_of_three(self):
        """Four batches with contiguous, increasing windows."""
        plan = create_plan(agent_ids(10), batch_size=3)

        assert plan.total_agents == 10
        assert plan.batch_count == 4
        assert [len(batch.agents) for batch in plan.batches] == [3, 3, 3, 1]
        assert plan.batches[0].agents == ("a1", "a2", "a3")
        assert plan.batches[-1].agents == ("a10",)

        for previous, current in zip(plan.batches, plan.batches[1:]):
            assert previous.end_time == current.start_time
            assert current.start_time > previous.start_time
        assert plan.batches[0].start_time == 0
        assert sum(b.end_time - b.start_time for b in plan.batches) == pytest.approx(
            plan.estimated_completion_time
        )
        assert plan.estimated_completion_time == pytest.approx(60.0)

    def test_window_never_shorter_than_sync_interval(self):
        plan = create_plan(agent_ids(10), max_time=2.0, sync_interval=1.0, batch_size=3)

        assert all(b.end_time - b.start_time == 1.0 for b in plan.batches)
        assert plan.estimated_completion_time == 4.0

    def test_plan_records_options(self):
        plan = create_plan(agent_ids(2), max_time=5.0, sync_interval=0.5, batch_size=1)

        assert plan.options.max_time == 5.0
        assert plan.options.sync_interval == 0.5
        assert plan.options.batch_size == 1

    def test_empty_population(self):
        plan = create_plan([])

        assert plan.batch_count == 0
        assert plan.batches == ()
        assert plan.estimated_completion_time == 0

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            create_plan(agent_ids(3), batch_size=0)

    def test_plan_is_immutable(self):
        plan = create_plan(agent_ids(3))
        with pytest.raises(AttributeError):
            plan.batch_count = 7  # type: ignore


class TestExecutePlan:
    """Tests for execute_plan."""

    @pytest.mark.asyncio
    async def test_batches_sync_internally(self, unique_sets, no_sleep):
        ids = agent_ids(10)
        plan = create_plan(ids, batch_size=3)

        result = await execute_plan(plan, unique_sets(ids), no_sleep)

        assert result.ok
        assert result.early_stop is False
        assert result.results.batches_completed == 4
        assert result.results.agents_synced == 10
        assert result.belief_sets["a1"].ids() == {"fact_a1", "fact_a2", "fact_a3"}
        assert result.belief_sets["a10"].ids() == {"fact_a10"}
        assert result.results.final_convergence_score == pytest.approx(28 / 100)
        assert [r.agent_count for r in result.results.batch_results] == [3, 3, 3, 1]
        assert result.results.end_time is not None

    @pytest.mark.asyncio
    async def test_inputs_are_not_modified(self, unique_sets, no_sleep):
        ids = agent_ids(4)
        sets = unique_sets(ids)
        plan = create_plan(ids, batch_size=2)

        await execute_plan(plan, sets, no_sleep)

        assert all(len(belief_set) == 1 for belief_set in sets.values())

    @pytest.mark.asyncio
    async def test_early_stop_when_converged(self, make_atom, no_sleep):
        ids = agent_ids(6)
        shared = make_atom("shared", "x")
        sets = {agent_id: BeliefSet(agent_id, {"shared": shared}) for agent_id in ids}
        plan = create_plan(ids, batch_size=3)

        result = await execute_plan(plan, sets, no_sleep)

        assert result.early_stop is True
        assert result.results.batches_completed == 1
        assert result.results.convergence_achieved is True

    @pytest.mark.asyncio
    async def test_early_stop_disabled(self, make_atom):
        ids = agent_ids(6)
        shared = make_atom("shared", "x")
        sets = {agent_id: BeliefSet(agent_id, {"shared": shared}) for agent_id in ids}
        plan = create_plan(ids, batch_size=3)

        result = await execute_plan(
            plan, sets, PlanExecutionOptions(time_scale=0, early_stop=False)
        )

        assert result.early_stop is False
        assert result.results.batches_completed == 2

    @pytest.mark.asyncio
    async def test_convergence_check_disabled(self, unique_sets):
        ids = agent_ids(3)
        plan = create_plan(ids, batch_size=3)

        result = await execute_plan(
            plan, unique_sets(ids), PlanExecutionOptions(time_scale=0, check_convergence=False)
        )

        assert result.early_stop is False
        assert result.results.final_convergence_score == 0.0

    @pytest.mark.asyncio
    async def test_progress_callback(self, unique_sets):
        ids = agent_ids(10)
        updates = []
        plan = create_plan(ids, batch_size=3)

        await execute_plan(
            plan,
            unique_sets(ids),
            PlanExecutionOptions(time_scale=0, progress_callback=updates.append),
        )

        assert [u.percent_complete for u in updates] == [25.0, 50.0, 75.0, 100.0]
        assert [u.agents_synced for u in updates] == [3, 6, 9, 10]
        assert updates[-1].total_batches == 4

    @pytest.mark.asyncio
    async def test_sleeps_until_batch_start(self, unique_sets):
        ids = agent_ids(2)
        plan = create_plan(ids, max_time=0.2, sync_interval=0.1, batch_size=1)

        started = time.monotonic()
        await execute_plan(plan, unique_sets(ids), PlanExecutionOptions(time_scale=1.0))

        assert time.monotonic() - started >= 0.09

    @pytest.mark.asyncio
    async def test_internal_fault_becomes_error_result(self, unique_sets):
        """A failing batch is reported, not raised."""
        ids = agent_ids(4)
        sets = unique_sets(ids)
        plan = create_plan(ids, batch_size=2)

        def explode(update):
            raise RuntimeError("callback failed")

        result = await execute_plan(
            plan, sets, PlanExecutionOptions(time_scale=0, progress_callback=explode)
        )

        assert not result.ok
        assert isinstance(result.error, PlanExecutionError)
        assert result.error.batch_id == 0
        assert isinstance(result.error.cause, RuntimeError)
        assert result.belief_sets == sets

    @pytest.mark.asyncio
    async def test_probabilistic_strategy_with_seeded_rng(self, make_atom, rng):
        ids = agent_ids(3)
        sets = {
            agent_id: BeliefSet(agent_id, {"b": make_atom("b", {"v": i}, 0.5, source=agent_id)})
            for i, agent_id in enumerate(ids)
        }
        plan = create_plan(ids, batch_size=3)

        result = await execute_plan(
            plan, sets, PlanExecutionOptions(time_scale=0, conflict_strategy="probabilistic", rng=rng)
        )

        assert result.ok
        assert all("b" in belief_set for belief_set in result.belief_sets.values())


def seeded_tracker(scores_oldest_first, seconds_apart=10.0, end=None):
    """Tracker whose history holds the given scores at fixed intervals."""
    tracker = ConsistencyTracker()
    end = end or datetime(2024, 1, 1, 12, 0, 0)
    count = len(scores_oldest_first)
    for index, score in enumerate(scores_oldest_first):
        timestamp = end - timedelta(seconds=seconds_apart * (count - 1 - index))
        tracker.convergence_history.appendleft(ConvergenceCheck(timestamp, score, index))
    return tracker


class TestEstimateTimeToConsistency:
    """Tests for estimate_time_to_consistency."""

    def test_insufficient_data(self):
        estimate = estimate_time_to_consistency(seeded_tracker([0.5]))

        assert estimate.ok is False
        assert estimate.reason is ConsistencyReason.INSUFFICIENT_DATA

    def test_no_improvement(self):
        estimate = estimate_time_to_consistency(seeded_tracker([0.5, 0.4]))

        assert estimate.ok is False
        assert estimate.reason is ConsistencyReason.NO_IMPROVEMENT

    def test_already_at_target(self):
        estimate = estimate_time_to_consistency(seeded_tracker([0.5, 0.96]))

        assert estimate.ok is True
        assert estimate.seconds == 0

    def test_linear_extrapolation(self):
        estimate = estimate_time_to_consistency(seeded_tracker([0.5, 0.6, 0.7]))

        assert estimate.ok is True
        assert estimate.steps == 3
        assert estimate.seconds == pytest.approx(30.0)


class TestVerifyBoundedConsistency:
    """Tests for verify_bounded_consistency."""

    def test_converged_population(self, make_atom):
        atom = make_atom("b1", "x")
        sets = [BeliefSet("a", {"b1": atom}), BeliefSet("b", {"b1": atom})]
        tracker = ConsistencyTracker()

        result = verify_bounded_consistency(sets, tracker)

        assert result.ok is True
        assert result.convergence_score == 1.0
        assert tracker.convergence_trend() == [1.0]

    def test_insufficient_history(self, make_atom):
        sets = [BeliefSet("a", {"b1": make_atom("b1", "x")}), BeliefSet("b")]
        result = verify_bounded_consistency(sets, ConsistencyTracker())

        assert result.ok is False
        assert result.reason is ConsistencyReason.INSUFFICIENT_DATA

    def _half_converged(self, make_atom):
        # two ids, one set holds both, the other none: score 0.5
        return [
            BeliefSet("a", {"b1": make_atom("b1", "x"), "b2": make_atom("b2", "y")}),
            BeliefSet("b"),
        ]

    def test_within_bound(self, make_atom):
        tracker = seeded_tracker([0.3, 0.4], seconds_apart=1.0, end=datetime.now() - timedelta(seconds=1))

        result = verify_bounded_consistency(self._half_converged(make_atom), tracker, max_time=300.0)

        assert result.ok is True
        assert result.convergence_score == 0.5
        assert 0 < result.estimated_time < 300

    def test_exceeds_bound(self, make_atom):
        tracker = seeded_tracker([0.3, 0.4], seconds_apart=1000.0, end=datetime.now() - timedelta(seconds=1000))

        result = verify_bounded_consistency(self._half_converged(make_atom), tracker, max_time=300.0)

        assert result.ok is False
        assert result.reason is ConsistencyReason.EXCEEDS_TIME_BOUND
        assert result.estimated_time > 300
