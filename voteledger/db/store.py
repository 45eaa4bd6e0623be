"""
Chain Store

The ChainStore owns the canonical, in-memory sequence of votes.

It is responsible for:
- Creating the genesis vote exactly once
- Atomic append: read tail, build candidate, validate, commit
- Consistent snapshots for readers

The vote factory/validator (core.ledger) retains responsibility for:
- Hash derivation
- Linkage rules

TRANSACTION CONTRACT:
Every append runs inside _begin_append(), which holds the store lock
from the moment the tail is read until the candidate is committed or
rejected:

    with self._begin_append() as ctx:
        candidate = factory(ctx.tail, value)
        ...
        ctx.commit(candidate)

Narrowing that section reintroduces forks: two appends could read the
same tail and both produce a "next" vote.

Nothing is persisted. A restart starts a fresh chain from a new genesis.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Generator, Optional

from ..core.ledger import check_vote, create_genesis_vote, create_vote, verify_chain
from ..observability import get_logger, get_metrics
from ..schemas import RejectionReason, Vote

logger = get_logger(__name__)


# ============================================================
# EXCEPTIONS
# ============================================================

class ChainStoreError(Exception):
    """Base exception for chain store errors."""
    pass


class ChainNotInitializedError(ChainStoreError):
    """Raised when the store is used before the genesis vote exists."""
    pass


class ChainAlreadyInitializedError(ChainStoreError):
    """Raised when initialize() is called a second time."""
    pass


# ============================================================
# DATA STRUCTURES
# ============================================================

VoteFactory = Callable[[Vote, str], Vote]


@dataclass(frozen=True)
class AppendResult:
    """
    Outcome of an append.

    Rejection is an expected result, not an error: the chain is left
    untouched and `reason` says which check failed.
    """
    accepted: bool
    vote: Optional[Vote] = None
    reason: Optional[RejectionReason] = None

    @classmethod
    def success(cls, vote: Vote) -> "AppendResult":
        return cls(accepted=True, vote=vote)

    @classmethod
    def rejected(cls, reason: RejectionReason) -> "AppendResult":
        return cls(accepted=False, reason=reason)


@dataclass
class AppendContext:
    """
    State visible inside the append critical section.

    Only valid while the store lock is held.
    """
    tail: Vote
    _store: "ChainStore"
    _committed: bool = field(default=False, init=False)

    def commit(self, vote: Vote) -> Vote:
        if self._committed:
            raise ChainStoreError("Append already committed")
        self._store._votes.append(vote)
        self._committed = True
        return vote


# ============================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================

class ChainStore:
    """
    In-memory, single-process chain of votes.

    States:
    - Uninitialized: no genesis yet; get_all() returns [], append() raises
    - Ready: genesis present; every append advances length by 1 or 0

    The only transition is initialize(), fired once.

    CONCURRENCY GUARANTEES:
    - One lock guards every mutation
    - Appends are totally ordered; no two share a predecessor
    - Readers copy the sequence under the same lock, so a snapshot
      never contains a half-committed vote
    """

    def __init__(self, entry_factory: Optional[VoteFactory] = None):
        """
        Initialize ChainStore.

        Args:
            entry_factory: Builds a candidate from (tail, value).
                           Defaults to core.ledger.create_vote.
        """
        self._votes: list[Vote] = []
        self._lock = Lock()
        self._entry_factory = entry_factory or create_vote

    @property
    def is_initialized(self) -> bool:
        """Check if the genesis vote exists."""
        return len(self._votes) > 0

    @property
    def length(self) -> int:
        """Total number of votes in the chain, genesis included."""
        with self._lock:
            return len(self._votes)

    def initialize(self) -> Vote:
        """
        Create the genesis vote and make it the sole element.

        Raises:
            ChainAlreadyInitializedError: If genesis already exists
        """
        with self._lock:
            if self._votes:
                raise ChainAlreadyInitializedError(
                    "Chain already has a genesis vote. "
                    "Genesis is created exactly once per process."
                )
            genesis = create_genesis_vote()
            self._votes.append(genesis)

        logger.info("Genesis vote created", vote_hash=genesis.hash[:16])
        return genesis

    def get_all(self) -> list[Vote]:
        """Return a snapshot of the chain in index order."""
        with self._lock:
            return list(self._votes)

    def tail(self) -> Vote:
        """Get the current last vote."""
        with self._lock:
            if not self._votes:
                raise ChainNotInitializedError("Chain has no genesis vote")
            return self._votes[-1]

    @contextmanager
    def _begin_append(self) -> Generator[AppendContext, None, None]:
        """Hold the store lock for the whole read-tail to commit section."""
        with self._lock:
            if not self._votes:
                raise ChainNotInitializedError(
                    "Cannot append before initialize(): chain has no genesis vote"
                )
            yield AppendContext(tail=self._votes[-1], _store=self)

    def append(self, value: str) -> AppendResult:
        """
        Append a vote carrying `value`.

        Flow (all under the lock):
        1. Read the tail
        2. Build a candidate from the tail
        3. Validate the candidate against the tail
        4. Commit on success; leave the chain unchanged on rejection

        Returns:
            AppendResult with the new vote, or the rejection reason

        Raises:
            ChainNotInitializedError: If called before initialize()
        """
        start = time.perf_counter()

        with self._begin_append() as ctx:
            candidate = self._entry_factory(ctx.tail, value)
            reason = check_vote(candidate, ctx.tail)
            if reason is None:
                ctx.commit(candidate)

        latency_ms = (time.perf_counter() - start) * 1000

        if reason is not None:
            get_metrics().record_rejection(reason)
            logger.warning(
                "Vote rejected",
                reason=reason.value,
                candidate_index=candidate.index,
                tail_index=ctx.tail.index,
            )
            return AppendResult.rejected(reason)

        get_metrics().record_append(latency_ms)
        logger.debug(
            "Vote appended",
            index=candidate.index,
            vote_hash=candidate.hash[:16],
        )
        return AppendResult.success(candidate)

    def verify_integrity(self) -> bool:
        """
        Verify the entire chain is intact.

        This should be run periodically as a health check.
        """
        return verify_chain(self.get_all())
