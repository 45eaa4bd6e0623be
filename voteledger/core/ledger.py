"""
Vote Factory and Validator - The Heart of the System

This is an append-only, hash-linked ledger of votes.
Nothing is "edited". Votes happen.

This module is pure:
- Builds the genesis vote
- Builds a vote from its predecessor and a value
- Checks a candidate vote against its claimed predecessor
- Walks a whole chain for integrity

No I/O, no locking, no state. The ChainStore owns the sequence and
calls in here for every append.

Rules (enforced in code):
- Genesis is index 0 with value "" and prev_hash ""
- Every other vote has index = predecessor.index + 1
- Every other vote has prev_hash = predecessor.hash
- Every vote's hash is derived from its own fields, never recomputed after
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from ..schemas import RejectionReason, Vote
from .hasher import Hasher


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_genesis_vote(timestamp: Optional[datetime] = None) -> Vote:
    """
    Build the genesis vote.

    There is no predecessor, so index is 0 and both value and
    prev_hash are empty strings.
    """
    timestamp = timestamp or _now()
    return Vote(
        index=0,
        timestamp=timestamp,
        value="",
        prev_hash="",
        hash=Hasher.derive_hash(0, timestamp, "", ""),
    )


def create_vote(
    predecessor: Vote,
    value: str,
    timestamp: Optional[datetime] = None,
) -> Vote:
    """
    Build the vote that follows `predecessor`.

    Purely constructive: no validation is performed here.
    """
    index = predecessor.index + 1
    timestamp = timestamp or _now()
    prev_hash = predecessor.hash

    return Vote(
        index=index,
        timestamp=timestamp,
        value=value,
        prev_hash=prev_hash,
        hash=Hasher.derive_hash(index, timestamp, value, prev_hash),
    )


def check_vote(candidate: Vote, predecessor: Vote) -> Optional[RejectionReason]:
    """
    Check a candidate vote against its claimed predecessor.

    Structural checks run before the hash is recomputed.

    Returns:
        None if the candidate chains correctly, otherwise the first
        check it failed.
    """
    # 1. Index must advance by exactly one
    if candidate.index != predecessor.index + 1:
        return RejectionReason.INDEX_MISMATCH

    # 2. Must link to the predecessor's hash
    if candidate.prev_hash != predecessor.hash:
        return RejectionReason.PREV_HASH_MISMATCH

    # 3. Hash must match the candidate's own fields
    if not Hasher.verify_hash(
        candidate.index,
        candidate.timestamp,
        candidate.value,
        candidate.prev_hash,
        candidate.hash,
    ):
        return RejectionReason.HASH_MISMATCH

    return None


def validate_vote(candidate: Vote, predecessor: Vote) -> bool:
    """True iff `candidate` correctly chains from `predecessor`."""
    return check_vote(candidate, predecessor) is None


def is_valid_genesis(vote: Vote) -> bool:
    """Check the genesis shape and that its hash matches its fields."""
    if vote.index != 0 or vote.value != "" or vote.prev_hash != "":
        return False
    return Hasher.verify_hash(0, vote.timestamp, "", "", vote.hash)


def find_chain_break(votes: Iterable[Vote]) -> Optional[int]:
    """
    Walk a chain from genesis and find the first vote that breaks it.

    Returns:
        Position of the first invalid vote, or None if the chain is intact.
        An empty chain has nothing to break.
    """
    predecessor = None
    for position, vote in enumerate(votes):
        if predecessor is None:
            if not is_valid_genesis(vote):
                return position
        elif not validate_vote(vote, predecessor):
            return position
        predecessor = vote
    return None


def verify_chain(votes: Iterable[Vote]) -> bool:
    """
    Verify an entire vote chain is intact.

    A chain must be non-empty and start with a valid genesis vote.
    """
    votes = list(votes)
    if not votes:
        return False
    return find_chain_break(votes) is None
