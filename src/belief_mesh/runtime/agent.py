"""Belief agent actor.

Each BeliefAgent owns exactly one BeliefSet and runs one asyncio task that
drains a private, unbounded mailbox. Every change to the set happens while
that task handles a message, one message at a time, so the set never
needs a lock and is never shared by reference: readers receive copies.

Work that waits on other agents (propagation, neighbor sync) runs in
separate tasks so the mailbox loop never blocks on another actor; they
report back (merged sets, metrics) by posting to the mailbox. Neighbor
sync is non-atomic: the initiator merges the neighbor's set into its live
set, while the neighbor adopts a merge of the initiator's snapshot, so a
change made on the neighbor during the sync can be lost.

Example:
    ```python
    registry = AgentRegistry()
    a = registry.create_agent("a")
    b = registry.create_agent("b")
    await registry.start_all()

    a.set_neighbors(["b"])
    await a.author_belief({"door": "open"}, 0.9)
    await a.sync_now()
    beliefs = await b.get_belief_set()
    ```
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Sequence
import asyncio
import logging
import random

from ..beliefs.atom import BeliefAtom
from ..beliefs.belief_set import BeliefSet
from ..beliefs.conflicts import ConflictStrategy, are_conflicting
from ..config import BeliefMeshConfig
from ..exceptions import (
    AgentUnavailableError,
    BeliefError,
    ConfigurationError,
    PropagationError,
    PropagationTimeoutError,
)
from ..propagation.convergence import verify_convergence
from ..propagation.protocol import (
    AdmissionStatus,
    BeliefUpdate,
    PropagationMode,
    PropagationResult,
    TargetOutcome,
    TargetStatus,
    admit_update,
    propagate_belief,
    synchronize_beliefs,
)
from .messages import (
    AuthorBelief,
    GetBelief,
    GetBeliefSet,
    GetMetrics,
    IngestBelief,
    MergeBeliefSet,
    PropagateBelief,
    QueryBeliefs,
    ReplaceBeliefSet,
    SetNeighbors,
    SyncFailed,
    SyncNow,
    SyncWith,
    UpdateConfig,
)

if TYPE_CHECKING:
    from .registry import AgentRegistry

logger = logging.getLogger(__name__)

# Seconds a caller waits for a request reply unless told otherwise
DEFAULT_REQUEST_TIMEOUT = 5.0


class AgentState(str, Enum):
    INITIALIZED = "initialized"
    ACTIVE = "active"
    STOPPED = "stopped"


@dataclass(frozen=True)
class AgentConfig:
    """Per-agent settings. Times are in seconds."""

    sync_interval: float = 5.0
    sync_timeout: float = 5.0
    propagation_timeout: float = 5.0
    conflict_strategy: ConflictStrategy = ConflictStrategy.HIGHEST_CONFIDENCE
    acceptance_threshold: float = 0.5
    auto_sync: bool = True
    metrics_enabled: bool = True

    @classmethod
    def from_mesh_config(cls, config: BeliefMeshConfig) -> "AgentConfig":
        """Derive agent defaults from the mesh configuration."""
        return cls(
            sync_interval=config.sync.interval,
            sync_timeout=config.sync.timeout,
            propagation_timeout=config.propagation.timeout,
            conflict_strategy=ConflictStrategy.parse(config.propagation.conflict_strategy),
            acceptance_threshold=config.propagation.acceptance_threshold,
            auto_sync=config.sync.auto_sync,
        )

    def updated(self, updates: Mapping[str, Any]) -> "AgentConfig":
        """Return a copy with ``updates`` applied.

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(set(updates) - known)
        if unknown:
            raise ConfigurationError(f"Unknown agent config keys: {', '.join(unknown)}")

        values = dict(updates)
        if "conflict_strategy" in values:
            values["conflict_strategy"] = ConflictStrategy.parse(values["conflict_strategy"])
        for key in ("sync_interval", "sync_timeout", "propagation_timeout"):
            if key in values and values[key] <= 0:
                raise ConfigurationError(f"{key} must be positive, got {values[key]}")
        threshold = values.get("acceptance_threshold", self.acceptance_threshold)
        if not 0.0 <= threshold <= 1.0:
            raise ConfigurationError(
                f"acceptance_threshold must be between 0 and 1, got {threshold}"
            )
        return replace(self, **values)


@dataclass
class AgentMetrics:
    """Counters exposed for external observability."""

    updates_received: int = 0
    updates_accepted: int = 0
    updates_rejected: int = 0
    beliefs_sent: int = 0
    conflicts_resolved: int = 0
    last_convergence_score: float = 0.0
    sync_failures: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _resolve_reply(reply: asyncio.Future | None, value: Any) -> None:
    # The caller may have given up (timeout cancels the future)
    if reply is not None and not reply.done():
        reply.set_result(value)


def _fail_reply(reply: asyncio.Future | None, error: BaseException) -> None:
    if reply is not None and not reply.done():
        reply.set_exception(error)


def _reply_when_done(task: asyncio.Task, reply: asyncio.Future | None, default: Any) -> None:
    """Resolve a request reply from a background task's outcome."""
    if reply is None:
        return

    def done(t: asyncio.Task) -> None:
        if t.cancelled():
            _resolve_reply(reply, default)
        elif t.exception() is not None:
            _fail_reply(reply, t.exception())
        else:
            _resolve_reply(reply, t.result())

    task.add_done_callback(done)


class BeliefAgent:
    """An agent that owns one belief set and talks through its mailbox."""

    def __init__(
        self,
        agent_id: str,
        config: AgentConfig | None = None,
        *,
        neighbors: Iterable["BeliefAgent | str"] = (),
        registry: "AgentRegistry | None" = None,
        rng: random.Random | None = None,
    ):
        """Create an agent (not yet running; call ``start``).

        Args:
            agent_id: Unique agent id
            config: Agent settings
            neighbors: Agents (or ids) synchronized with on sync_now
            registry: Used to resolve agent ids to agents
            rng: Random source for the probabilistic strategy
        """
        self._agent_id = agent_id
        self.config = config or AgentConfig()
        self._registry = registry
        self._rng = rng
        self._belief_set = BeliefSet(agent_id)
        self._neighbors: list[BeliefAgent | str] = list(neighbors)
        self._metrics = AgentMetrics()
        self._mailbox: asyncio.Queue = asyncio.Queue()
        self._state = AgentState.INITIALIZED
        self._task: asyncio.Task | None = None
        self._ticker: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self.last_sync: datetime | None = None

        self._handlers: dict[type, Callable[[Any], None]] = {
            AuthorBelief: self._on_author_belief,
            IngestBelief: self._on_ingest_belief,
            GetBeliefSet: self._on_get_belief_set,
            GetBelief: self._on_get_belief,
            QueryBeliefs: self._on_query_beliefs,
            ReplaceBeliefSet: self._on_replace_belief_set,
            MergeBeliefSet: self._on_merge_belief_set,
            SyncFailed: self._on_sync_failed,
            SetNeighbors: self._on_set_neighbors,
            UpdateConfig: self._on_update_config,
            PropagateBelief: self._on_propagate_belief,
            SyncNow: self._on_sync_now,
            SyncWith: self._on_sync_with,
            GetMetrics: self._on_get_metrics,
            BeliefUpdate: self._on_belief_update,
        }

    @property
    def agent_id(self) -> str:
        return self._agent_id

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == AgentState.ACTIVE

    def __repr__(self) -> str:
        return f"BeliefAgent({self._agent_id!r}, state={self._state.value})"

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start the mailbox loop (and the sync ticker if auto_sync)."""
        if self._state == AgentState.ACTIVE:
            logger.warning(f"Agent {self._agent_id} already running")
            return
        if self._state == AgentState.STOPPED:
            raise AgentUnavailableError(self._agent_id)

        self._state = AgentState.ACTIVE
        self._task = asyncio.create_task(self._run(), name=f"belief-agent-{self._agent_id}")
        if self.config.auto_sync:
            self._start_ticker()
        logger.info(f"Agent {self._agent_id} started")

    async def stop(self) -> None:
        """Stop the agent; pending requests fail with AgentUnavailableError."""
        if self._state == AgentState.STOPPED:
            return
        self._state = AgentState.STOPPED

        self._stop_ticker()
        tasks = [t for t in (self._task, *self._background) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._background.clear()

        while not self._mailbox.empty():
            message = self._mailbox.get_nowait()
            _fail_reply(getattr(message, "reply", None), AgentUnavailableError(self._agent_id))

        logger.info(f"Agent {self._agent_id} stopped")

    def post(self, message: object) -> None:
        """Enqueue a message.

        Raises:
            AgentUnavailableError: If the agent is not running
        """
        if self._state != AgentState.ACTIVE:
            raise AgentUnavailableError(self._agent_id)
        self._mailbox.put_nowait(message)

    async def _run(self) -> None:
        while True:
            message = await self._mailbox.get()
            handler = self._handlers.get(type(message))
            if handler is None:
                logger.debug(f"Agent {self._agent_id} ignoring {type(message).__name__}")
                continue
            try:
                handler(message)
            except Exception as e:
                logger.error(
                    f"Agent {self._agent_id} failed handling {type(message).__name__}: {e}"
                )
                _fail_reply(getattr(message, "reply", None), e)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _start_ticker(self) -> None:
        if self._ticker is None:
            self._ticker = asyncio.create_task(self._tick())

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.config.sync_interval)
            try:
                self.post(SyncNow())
            except AgentUnavailableError:
                return

    async def _request(self, message: Any, timeout: float | None = None) -> Any:
        timeout = DEFAULT_REQUEST_TIMEOUT if timeout is None else timeout
        message.reply = asyncio.get_running_loop().create_future()
        self.post(message)
        try:
            return await asyncio.wait_for(message.reply, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise PropagationTimeoutError(self._agent_id, timeout) from e

    # =========================================================================
    # Public surface
    # =========================================================================

    async def author_belief(
        self,
        content: Any,
        confidence: float,
        *,
        metadata: Mapping[str, Any] | None = None,
        tags: Sequence[str] | None = None,
        belief_id: str | None = None,
        propagate: bool = False,
    ) -> BeliefAtom:
        """Author a belief in this agent's set.

        Args:
            content: Belief content
            confidence: Confidence in [0, 1]
            metadata: Optional annotations
            tags: Optional labels
            belief_id: Explicit id for a shared proposition
            propagate: Also send it to all neighbors (fire and forget)

        Returns:
            The stored atom

        Raises:
            BeliefError: If confidence is outside [0, 1]
        """
        if not 0.0 <= confidence <= 1.0:
            raise BeliefError(f"Confidence must be between 0 and 1, got {confidence}")
        return await self._request(
            AuthorBelief(content, confidence, metadata, tags, belief_id, propagate)
        )

    def ingest_belief(self, atom: BeliefAtom) -> None:
        """Insert an externally authored atom unconditionally."""
        self.post(IngestBelief(atom))

    async def get_belief_set(self, timeout: float | None = None) -> BeliefSet:
        """Return a copy of the agent's belief set."""
        return await self._request(GetBeliefSet(), timeout)

    async def get_belief(self, belief_id: str) -> BeliefAtom | None:
        return await self._request(GetBelief(belief_id))

    async def query_beliefs(self, predicate: Callable[[BeliefAtom], bool]) -> list[BeliefAtom]:
        return await self._request(QueryBeliefs(predicate))

    def replace_belief_set(self, belief_set: BeliefSet) -> None:
        """Adopt a whole belief set (re-owned by this agent)."""
        self.post(ReplaceBeliefSet(belief_set.copy(agent_id=self._agent_id)))

    def set_neighbors(self, neighbors: Iterable["BeliefAgent | str"]) -> None:
        self.post(SetNeighbors(list(neighbors)))

    async def update_config(self, updates: Mapping[str, Any]) -> AgentConfig:
        """Apply configuration updates.

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        return await self._request(UpdateConfig(dict(updates)))

    async def propagate(
        self,
        belief_id: str,
        targets: Iterable["BeliefAgent | str"],
        mode: PropagationMode | str = PropagationMode.ASYNC,
        timeout: float | None = None,
    ) -> PropagationResult | None:
        """Send one of this agent's beliefs to other agents.

        Returns:
            PropagationResult, or None if the belief is unknown
        """
        mode = PropagationMode(mode)
        if timeout is None:
            timeout = self.config.propagation_timeout
        wait = timeout + DEFAULT_REQUEST_TIMEOUT
        return await self._request(
            PropagateBelief(belief_id, list(targets), mode, timeout), timeout=wait
        )

    async def sync_now(self) -> int:
        """Synchronize with every neighbor; returns how many succeeded."""
        wait = self.config.sync_timeout + DEFAULT_REQUEST_TIMEOUT
        return await self._request(SyncNow(), timeout=wait)

    async def sync_with(self, target: "BeliefAgent | str") -> bool:
        """Synchronize with one agent; returns whether it succeeded."""
        wait = self.config.sync_timeout + DEFAULT_REQUEST_TIMEOUT
        return await self._request(SyncWith(target), timeout=wait)

    async def get_metrics(self) -> AgentMetrics:
        return await self._request(GetMetrics())

    # =========================================================================
    # Handlers (run on the mailbox loop only)
    # =========================================================================

    def _on_author_belief(self, message: AuthorBelief) -> None:
        atom = BeliefAtom.create(
            message.content,
            self._agent_id,
            message.confidence,
            metadata=message.metadata,
            tags=message.tags,
            belief_id=message.belief_id,
        )
        self._belief_set.add(atom)
        logger.debug(f"Agent {self._agent_id} authored {atom.id}")

        if message.propagate and self._neighbors:
            self._start_propagation(atom, self._neighbors, PropagationMode.ASYNC, None)
        _resolve_reply(message.reply, atom)

    def _on_ingest_belief(self, message: IngestBelief) -> None:
        self._belief_set.add(message.atom)
        _resolve_reply(message.reply, None)

    def _on_get_belief_set(self, message: GetBeliefSet) -> None:
        _resolve_reply(message.reply, self._belief_set.copy())

    def _on_get_belief(self, message: GetBelief) -> None:
        _resolve_reply(message.reply, self._belief_set.get(message.belief_id))

    def _on_query_beliefs(self, message: QueryBeliefs) -> None:
        _resolve_reply(message.reply, self._belief_set.filter(message.predicate))

    def _on_replace_belief_set(self, message: ReplaceBeliefSet) -> None:
        self._belief_set = message.belief_set
        _resolve_reply(message.reply, None)

    def _on_merge_belief_set(self, message: MergeBeliefSet) -> None:
        # Merge into the live set so beliefs added since the sync began survive
        self._belief_set = self._belief_set.merge(
            message.belief_set, self.config.conflict_strategy, rng=self._rng
        )
        self._metrics.last_convergence_score = message.convergence_score
        _resolve_reply(message.reply, None)

    def _on_sync_failed(self, message: SyncFailed) -> None:
        logger.warning(
            f"Agent {self._agent_id} sync with {message.target} failed: {message.reason}"
        )
        self._metrics.sync_failures += 1
        _resolve_reply(message.reply, None)

    def _on_set_neighbors(self, message: SetNeighbors) -> None:
        self._neighbors = list(message.neighbors)
        _resolve_reply(message.reply, None)

    def _on_update_config(self, message: UpdateConfig) -> None:
        self.config = self.config.updated(message.updates)
        if self.config.auto_sync:
            self._start_ticker()
        else:
            self._stop_ticker()
        logger.debug(f"Agent {self._agent_id} config updated: {dict(message.updates)}")
        _resolve_reply(message.reply, self.config)

    def _on_get_metrics(self, message: GetMetrics) -> None:
        _resolve_reply(message.reply, replace(self._metrics))

    def _on_belief_update(self, message: BeliefUpdate) -> None:
        incoming = message.atom
        existing = self._belief_set.get(incoming.id)
        self._belief_set, status = admit_update(
            incoming,
            self._belief_set,
            self.config.acceptance_threshold,
            self.config.conflict_strategy,
            rng=self._rng,
        )

        if self.config.metrics_enabled:
            self._metrics.updates_received += 1
            if status is AdmissionStatus.ACCEPTED:
                self._metrics.updates_accepted += 1
                if existing is not None and are_conflicting(existing, incoming):
                    self._metrics.conflicts_resolved += 1
            else:
                self._metrics.updates_rejected += 1

        logger.debug(f"Agent {self._agent_id} {status.value} update {incoming.id}")
        _resolve_reply(message.reply, status)

    def _on_propagate_belief(self, message: PropagateBelief) -> None:
        atom = self._belief_set.get(message.belief_id)
        if atom is None:
            logger.debug(f"Agent {self._agent_id} cannot propagate unknown {message.belief_id}")
            _resolve_reply(message.reply, None)
            return
        task = self._start_propagation(atom, message.targets, message.mode, message.timeout)
        _reply_when_done(task, message.reply, None)

    def _on_sync_now(self, message: SyncNow) -> None:
        self.last_sync = datetime.now()
        snapshot = self._belief_set.copy()
        neighbors = list(self._neighbors)

        async def sync_all() -> int:
            outcomes = await asyncio.gather(
                *(self._sync_with_neighbor(n, snapshot) for n in neighbors)
            )
            return sum(1 for ok in outcomes if ok)

        task = self._spawn(sync_all())
        _reply_when_done(task, message.reply, 0)

    def _on_sync_with(self, message: SyncWith) -> None:
        task = self._spawn(self._sync_with_neighbor(message.target, self._belief_set.copy()))
        _reply_when_done(task, message.reply, False)

    # =========================================================================
    # Cross-agent work (runs in background tasks)
    # =========================================================================

    def _resolve(self, ref: "BeliefAgent | str") -> "BeliefAgent":
        if not isinstance(ref, str):
            return ref
        if self._registry is None:
            raise AgentUnavailableError(ref)
        return self._registry.resolve(ref)

    def _start_propagation(
        self,
        atom: BeliefAtom,
        targets: Sequence["BeliefAgent | str"],
        mode: PropagationMode,
        timeout: float | None,
    ) -> asyncio.Task:
        receivers = []
        unresolved = []
        for ref in targets:
            try:
                receivers.append(self._resolve(ref))
            except AgentUnavailableError as e:
                logger.warning(f"Agent {self._agent_id} cannot reach {ref}: {e}")
                unresolved.append(TargetOutcome(str(ref), TargetStatus.UNAVAILABLE, str(e)))

        if self.config.metrics_enabled:
            self._metrics.beliefs_sent += len(receivers)

        async def run() -> PropagationResult:
            result = await propagate_belief(
                atom,
                receivers,
                mode,
                self.config.propagation_timeout if timeout is None else timeout,
            )
            result.targets += len(unresolved)
            result.results.extend(unresolved)
            return result

        return self._spawn(run())

    async def _sync_with_neighbor(
        self,
        ref: "BeliefAgent | str",
        snapshot: BeliefSet,
    ) -> bool:
        try:
            neighbor = self._resolve(ref)
            neighbor_set = await neighbor.get_belief_set(timeout=self.config.sync_timeout)
        except PropagationError as e:
            self._report_sync_failure(ref, str(e))
            return False

        mine, theirs = synchronize_beliefs(
            snapshot, neighbor_set, self.config.conflict_strategy, rng=self._rng
        )
        _converged, score = verify_convergence([mine, theirs])
        try:
            self.post(MergeBeliefSet(neighbor_set, score))
            neighbor.post(ReplaceBeliefSet(theirs))
        except AgentUnavailableError as e:
            self._report_sync_failure(ref, f"incomplete: {e}")
            return False

        logger.debug(
            f"Agent {self._agent_id} synced with {neighbor.agent_id} "
            f"({len(mine)} beliefs, convergence {score:.2f})"
        )
        return True

    def _report_sync_failure(self, ref: "BeliefAgent | str", reason: str) -> None:
        try:
            self.post(SyncFailed(getattr(ref, "agent_id", ref), reason))
        except AgentUnavailableError:
            logger.debug(f"Agent {self._agent_id} stopped before recording sync failure")
