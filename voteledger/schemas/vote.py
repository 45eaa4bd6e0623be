"""
Vote Schema

A vote is one link in the chain.
Nothing is "edited". Votes are appended.

Each vote:
- Is built from its predecessor
- Is hashed
- Is chained
- Is never mutated afterward
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class RejectionReason(str, Enum):
    """Why a candidate vote did not chain from the current tail."""
    INDEX_MISMATCH = "index_mismatch"
    PREV_HASH_MISMATCH = "prev_hash_mismatch"
    HASH_MISMATCH = "hash_mismatch"


class Vote(BaseModel):
    """
    The immutable vote record.

    Rules:
    - No UPDATE
    - No DELETE
    - Ever

    Chain Integrity Rules:
    - index is 0 for genesis and increases by exactly 1 per vote
    - prev_hash is "" for genesis, the predecessor's hash otherwise
    - hash must be verifiable from (index, timestamp, value, prev_hash)
    """
    model_config = ConfigDict(frozen=True)

    index: int = Field(
        ...,
        ge=0,
        description="Position in the chain (0 for genesis)"
    )

    timestamp: datetime = Field(
        ...,
        description="Creation time. Informational, never validated for ordering."
    )

    value: str = Field(
        default="",
        description="Opaque vote payload (empty for genesis)"
    )

    hash: str = Field(
        ...,
        description="SHA-256 over index, timestamp, value and prev_hash"
    )

    prev_hash: str = Field(
        default="",
        description="Hash of the preceding vote (empty for genesis)"
    )

    @field_serializer("timestamp")
    def _serialize_timestamp(self, timestamp: datetime) -> str:
        # Import here to avoid circular imports
        from ..core.hasher import Hasher

        # Wire form equals hash input so clients can recompute hashes
        return Hasher.serialize_timestamp(timestamp)

    @property
    def is_genesis(self) -> bool:
        return self.index == 0 and self.prev_hash == ""


class VoteRequest(BaseModel):
    """Request to cast a vote."""
    value: str = ""


class RejectionResponse(BaseModel):
    """Body returned when a vote does not chain from the tail."""
    message: str = "invalid vote"
