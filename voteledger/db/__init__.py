"""
Storage Layer for the Vote Ledger

Provides:
- ChainStore: the in-memory, lock-guarded chain of votes
- AppendResult: accepted vote or rejection reason
"""

from .store import (
    AppendContext,
    AppendResult,
    ChainAlreadyInitializedError,
    ChainNotInitializedError,
    ChainStore,
    ChainStoreError,
)

__all__ = [
    "AppendContext",
    "AppendResult",
    "ChainAlreadyInitializedError",
    "ChainNotInitializedError",
    "ChainStore",
    "ChainStoreError",
]
