"""Tests for ConsistencyTracker."""

import threading
from datetime import datetime, timedelta

from belief_mesh.consistency import ConsistencyTracker
from belief_mesh.consistency.tracker import HISTORY_LIMIT


class TestVersions:
    """Tests for version bookkeeping."""

    def test_increment_global_version(self):
        tracker = ConsistencyTracker()
        assert tracker.increment_global_version() == 1
        assert tracker.increment_global_version() == 2
        assert tracker.global_version == 2

    def test_update_agent_version_stamps_sync_time(self):
        tracker = ConsistencyTracker()
        before = datetime.now()
        tracker.update_agent_version("a", 3)

        assert tracker.agent_versions == {"a": 3}
        assert tracker.last_sync_times["a"] >= before

    def test_detect_lagging_agents(self):
        tracker = ConsistencyTracker(global_version=5)
        tracker.update_agent_version("current", 5)
        tracker.update_agent_version("close", 3)
        tracker.update_agent_version("behind", 2)

        assert tracker.detect_lagging_agents() == [("behind", 3)]
        assert sorted(tracker.detect_lagging_agents(max_lag=1)) == [("behind", 3), ("close", 2)]

    def test_detect_stale_agents(self):
        tracker = ConsistencyTracker()
        old = datetime.now() - timedelta(minutes=10)
        tracker.last_sync_times["stale"] = old
        tracker.update_agent_version("fresh", 0)

        assert tracker.detect_stale_agents() == [("stale", old)]
        assert tracker.detect_stale_agents(max_seconds=3600) == []

    def test_concurrent_increments(self):
        """The lock serialises access from several threads."""
        tracker = ConsistencyTracker()

        def bump():
            for _ in range(1000):
                tracker.increment_global_version()

        threads = [threading.Thread(target=bump) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert tracker.global_version == 8000


class TestConvergenceHistory:
    """Tests for the convergence history."""

    def test_record_defaults_to_current_version(self):
        tracker = ConsistencyTracker(global_version=4)
        check = tracker.record_convergence_check(0.7)

        assert check.global_version == 4
        assert check.score == 0.7
        assert tracker.convergence_history[0] is check

    def test_record_with_explicit_version(self):
        tracker = ConsistencyTracker(global_version=4)
        assert tracker.record_convergence_check(0.7, global_version=2).global_version == 2

    def test_history_is_newest_first_and_capped(self):
        tracker = ConsistencyTracker()
        for index in range(HISTORY_LIMIT + 10):
            tracker.record_convergence_check(float(index))

        assert len(tracker.convergence_history) == HISTORY_LIMIT
        assert tracker.convergence_trend(3) == [59.0, 58.0, 57.0]
        assert tracker.convergence_history[-1].score == 10.0

    def test_trend_default_count(self):
        tracker = ConsistencyTracker()
        for index in range(15):
            tracker.record_convergence_check(index / 100)

        assert len(tracker.convergence_trend()) == 10
