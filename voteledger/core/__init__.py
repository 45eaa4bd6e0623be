# Core ledger services
from .hasher import Hasher, CanonicalSerializationError, derive_hash
from .ledger import (
    check_vote,
    create_genesis_vote,
    create_vote,
    find_chain_break,
    is_valid_genesis,
    validate_vote,
    verify_chain,
)

__all__ = [
    "Hasher",
    "CanonicalSerializationError",
    "derive_hash",
    "check_vote",
    "create_genesis_vote",
    "create_vote",
    "find_chain_break",
    "is_valid_genesis",
    "validate_vote",
    "verify_chain",
]
