"""Consistency bookkeeping across a population of agents.

The tracker records a global version counter, the last version each agent
synced to (and when), and a capped history of convergence checks. It is a
single coordinator-owned object; a lock serialises access so several
planners may share one tracker.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
import threading

HISTORY_LIMIT = 50


@dataclass(frozen=True)
class ConvergenceCheck:
    """One recorded convergence measurement."""

    timestamp: datetime
    score: float
    global_version: int


@dataclass
class ConsistencyTracker:
    """Tracks versions, sync times and convergence history.

    ``convergence_history`` is most-recent-first and holds at most
    HISTORY_LIMIT entries.
    """

    global_version: int = 0
    agent_versions: dict[str, int] = field(default_factory=dict)
    last_sync_times: dict[str, datetime] = field(default_factory=dict)
    convergence_history: deque = field(
        default_factory=lambda: deque(maxlen=HISTORY_LIMIT)
    )

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def increment_global_version(self) -> int:
        """Bump and return the global version."""
        with self._lock:
            self.global_version += 1
            return self.global_version

    def update_agent_version(self, agent_id: str, version: int) -> None:
        """Record an agent's version and stamp its sync time."""
        with self._lock:
            self.agent_versions[agent_id] = version
            self.last_sync_times[agent_id] = datetime.now()

    def record_convergence_check(
        self,
        score: float,
        global_version: int | None = None,
    ) -> ConvergenceCheck:
        """Push a convergence measurement onto the history.

        Args:
            score: Convergence score
            global_version: Version the check was made at (defaults to
                the current global version)
        """
        with self._lock:
            check = ConvergenceCheck(
                timestamp=datetime.now(),
                score=score,
                global_version=(
                    self.global_version if global_version is None else global_version
                ),
            )
            self.convergence_history.appendleft(check)
            return check

    def recent_checks(self, count: int) -> list[ConvergenceCheck]:
        """Most recent ``count`` checks, newest first."""
        with self._lock:
            return list(self.convergence_history)[:count]

    def convergence_trend(self, count: int = 10) -> list[float]:
        """Most recent ``count`` scores, newest first."""
        return [check.score for check in self.recent_checks(count)]

    def detect_lagging_agents(self, max_lag: int = 2) -> list[tuple[str, int]]:
        """Agents more than ``max_lag`` versions behind, with their lag."""
        with self._lock:
            return [
                (agent_id, self.global_version - version)
                for agent_id, version in self.agent_versions.items()
                if self.global_version - version > max_lag
            ]

    def detect_stale_agents(self, max_seconds: float = 300) -> list[tuple[str, datetime]]:
        """Agents whose last sync is older than ``max_seconds``."""
        now = datetime.now()
        with self._lock:
            return [
                (agent_id, last_sync)
                for agent_id, last_sync in self.last_sync_times.items()
                if (now - last_sync).total_seconds() > max_seconds
            ]
