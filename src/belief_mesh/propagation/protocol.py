"""Belief propagation between agents.

Propagation delivers a belief to other agents' mailboxes. Receivers are
anything that implements ``BeliefReceiver`` (normally a running
``BeliefAgent``); the protocol never touches a receiver's belief set
directly, it only posts ``BeliefUpdate`` messages.

Two modes:
- ASYNC: post to every target and return immediately (no delivery guarantee)
- SYNC: post with a reply future per target and wait for every reply
  concurrently, each bounded by ``timeout``. A slow or unavailable target
  only affects its own outcome.

``admit_update`` is the receiving side: the pure rule deciding whether an
incoming belief replaces the local copy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Protocol, runtime_checkable
import asyncio
import logging
import random

from ..beliefs.atom import BeliefAtom
from ..beliefs.belief_set import BeliefSet
from ..beliefs.conflicts import ConflictStrategy, are_conflicting, resolve_conflict
from ..exceptions import AgentUnavailableError, PropagationTimeoutError

logger = logging.getLogger(__name__)


class PropagationMode(str, Enum):
    """Delivery mode for propagate_belief."""

    ASYNC = "async"  # Fire and forget
    SYNC = "sync"  # Wait for acknowledgements


class AdmissionStatus(str, Enum):
    """Outcome of admitting an incoming belief."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TargetStatus(str, Enum):
    """Per-target outcome of a synchronous propagation."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"


@dataclass
class BeliefUpdate:
    """Inbound belief update message.

    When ``reply`` is set the receiver must resolve it with an
    AdmissionStatus once the update has been processed.
    """

    atom: BeliefAtom
    reply: asyncio.Future | None = None


@runtime_checkable
class BeliefReceiver(Protocol):
    """Anything that can receive belief updates."""

    @property
    def agent_id(self) -> str:
        ...

    def post(self, message: object) -> None:
        """Enqueue a message.

        Raises:
            AgentUnavailableError: If the receiver is not running
        """
        ...


@dataclass
class TargetOutcome:
    """Result of delivering one belief to one target."""

    agent_id: str
    status: TargetStatus
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == TargetStatus.ACCEPTED


@dataclass
class PropagationResult:
    """Result of a propagate_belief call.

    ``status`` is "initiated" for ASYNC mode and "completed" for SYNC.
    ``results`` is only populated in SYNC mode, except for targets that
    were unavailable at posting time (reported in both modes).
    """

    status: str
    targets: int
    successful: int = 0
    results: list[TargetOutcome] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def failed(self) -> list[TargetOutcome]:
        return [r for r in self.results if not r.success]


async def propagate_belief(
    atom: BeliefAtom,
    targets: Iterable[BeliefReceiver],
    mode: PropagationMode | str = PropagationMode.ASYNC,
    timeout: float = 5.0,
) -> PropagationResult:
    """Send a belief to a list of receivers.

    Never retries. Errors from a single target are reported in that
    target's outcome and never raised.

    Args:
        atom: Belief to send
        targets: Receivers to deliver to
        mode: ASYNC (fire and forget) or SYNC (wait for acknowledgements)
        timeout: Per-target acknowledgement timeout in seconds (SYNC only)

    Returns:
        PropagationResult with per-target outcomes
    """
    mode = PropagationMode(mode)
    targets = list(targets)

    if mode is PropagationMode.ASYNC:
        unavailable = []
        for target in targets:
            try:
                target.post(BeliefUpdate(atom))
            except AgentUnavailableError as e:
                logger.warning(f"Propagation of {atom.id} skipped: {e}")
                unavailable.append(
                    TargetOutcome(target.agent_id, TargetStatus.UNAVAILABLE, str(e))
                )
        return PropagationResult(
            status="initiated",
            targets=len(targets),
            results=unavailable,
        )

    loop = asyncio.get_running_loop()

    async def deliver(target: BeliefReceiver) -> TargetOutcome:
        reply = loop.create_future()
        try:
            target.post(BeliefUpdate(atom, reply=reply))
            status = await asyncio.wait_for(reply, timeout=timeout)
        except asyncio.TimeoutError:
            error = PropagationTimeoutError(target.agent_id, timeout)
            logger.warning(str(error))
            return TargetOutcome(target.agent_id, TargetStatus.TIMEOUT, str(error))
        except AgentUnavailableError as e:
            logger.warning(f"Propagation of {atom.id} failed: {e}")
            return TargetOutcome(target.agent_id, TargetStatus.UNAVAILABLE, str(e))
        return TargetOutcome(target.agent_id, TargetStatus(AdmissionStatus(status).value))

    results = list(await asyncio.gather(*(deliver(t) for t in targets)))
    successful = sum(1 for r in results if r.success)

    logger.debug(
        f"Propagated {atom.id} to {len(targets)} targets: {successful} accepted"
    )

    return PropagationResult(
        status="completed",
        targets=len(targets),
        successful=successful,
        results=results,
    )


def admit_update(
    incoming: BeliefAtom,
    local_set: BeliefSet,
    acceptance_threshold: float = 0.5,
    conflict_strategy: ConflictStrategy | str | None = ConflictStrategy.HIGHEST_CONFIDENCE,
    *,
    rng: random.Random | None = None,
) -> tuple[BeliefSet, AdmissionStatus]:
    """Decide whether an incoming belief is admitted into a local set.

    Rules:
    - unknown id: accept iff confidence >= acceptance_threshold
    - known id, incoming strictly newer:
        - conflicting: store the strategy's resolution, accept
        - otherwise: accept iff strictly higher confidence
    - known id, not newer: reject

    Args:
        incoming: Belief received from another agent
        local_set: Receiver's current set (not modified)
        acceptance_threshold: Minimum confidence for unseen beliefs
        conflict_strategy: Strategy for conflicting updates
        rng: Random source for the probabilistic strategy

    Returns:
        (resulting set, status); on rejection the input set is returned
    """
    existing = local_set.get(incoming.id)

    if existing is None:
        if incoming.confidence >= acceptance_threshold:
            updated = local_set.copy()
            updated.add(incoming)
            return updated, AdmissionStatus.ACCEPTED
        return local_set, AdmissionStatus.REJECTED

    if incoming.timestamp <= existing.timestamp:
        return local_set, AdmissionStatus.REJECTED

    if are_conflicting(existing, incoming):
        resolved = resolve_conflict(existing, incoming, conflict_strategy, rng=rng)
        updated = local_set.copy()
        updated.update(resolved)
        return updated, AdmissionStatus.ACCEPTED

    if incoming.confidence > existing.confidence:
        updated = local_set.copy()
        updated.update(incoming)
        return updated, AdmissionStatus.ACCEPTED

    return local_set, AdmissionStatus.REJECTED


def synchronize_beliefs(
    a: BeliefSet,
    b: BeliefSet,
    strategy: ConflictStrategy | str | None = ConflictStrategy.HIGHEST_CONFIDENCE,
    *,
    rng: random.Random | None = None,
) -> tuple[BeliefSet, BeliefSet]:
    """Merge two sets in both directions.

    Returns:
        (a merged with b, b merged with a)
    """
    return a.merge(b, strategy, rng=rng), b.merge(a, strategy, rng=rng)
