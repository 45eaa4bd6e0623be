# Schemas for the vote ledger
# These define the wire contract every chain export obeys.

from .vote import RejectionReason, RejectionResponse, Vote, VoteRequest

__all__ = [
    "RejectionReason",
    "RejectionResponse",
    "Vote",
    "VoteRequest",
]
