"""
Vote Hashing Service

Handles deterministic serialization and SHA-256 hashing of votes.
Same input → same hash. Always. Forever.

If this breaks, every chain ever exported becomes unverifiable.
Every change here must be backward-compatible or versioned.

HASH INPUT CONTRACT (version 1):
1. Fields are concatenated with no separator, in this order:
   index, timestamp, value, prev_hash
2. index: base-10 integer, no padding, no sign (negative is refused)
3. timestamp: UTC, YYYY-MM-DDTHH:MM:SS.ffffffZ (six microsecond digits, Z suffix)
4. value: inserted verbatim (whitespace preserved)
5. prev_hash: inserted verbatim ("" for genesis)
6. Encoding: UTF-8
7. Digest: SHA-256, lowercase hex (64 characters)
"""

import hashlib
from datetime import datetime, timezone


class CanonicalSerializationError(Exception):
    """Raised when vote fields cannot be canonically serialized."""
    pass


class Hasher:
    """
    Canonical serialization and hashing for votes.

    IMMUTABLE CONTRACT:
    - Same (index, timestamp, value, prev_hash) → same hash
    - Across platforms, Python versions and other implementations

    If you need to change serialization rules, you MUST version them.
    """

    SERIALIZATION_VERSION = 1

    HASH_LENGTH = 64

    @classmethod
    def serialize_timestamp(cls, dt: datetime) -> str:
        """
        Serialize datetime to canonical ISO 8601 format.

        RULES:
        - Must be timezone-aware (we need to know the absolute moment)
        - Converted to UTC for consistency
        - Includes microseconds (6 digits, zero-padded)
        - Uses Z suffix for UTC

        Format: YYYY-MM-DDTHH:MM:SS.ffffffZ
        """
        if dt.tzinfo is None:
            raise CanonicalSerializationError(
                "Vote timestamp is timezone-naive. "
                "All timestamps must be timezone-aware for deterministic hashing. "
                "Use datetime.now(timezone.utc) or attach a timezone."
            )

        utc_dt = dt.astimezone(timezone.utc)

        return utc_dt.strftime("%Y-%m-%dT%H:%M:%S.") + \
               f"{utc_dt.microsecond:06d}Z"

    @classmethod
    def canonicalize(
        cls,
        index: int,
        timestamp: datetime,
        value: str,
        prev_hash: str,
    ) -> str:
        """
        Build the exact string that gets hashed.

        This is THE critical function. See the module docstring for the rules.

        Raises:
            CanonicalSerializationError: If a field cannot be serialized
        """
        if isinstance(index, bool) or not isinstance(index, int):
            raise CanonicalSerializationError(
                f"Vote index must be an integer, got {type(index).__name__}"
            )
        if index < 0:
            raise CanonicalSerializationError(
                f"Vote index must be non-negative, got {index}"
            )
        if not isinstance(value, str) or not isinstance(prev_hash, str):
            raise CanonicalSerializationError(
                "Vote value and prev_hash must be strings"
            )

        return f"{index}{cls.serialize_timestamp(timestamp)}{value}{prev_hash}"

    @classmethod
    def derive_hash(
        cls,
        index: int,
        timestamp: datetime,
        value: str,
        prev_hash: str,
    ) -> str:
        """
        Hash vote fields using SHA-256.

        Returns:
            Hex-encoded SHA-256 hash (64 characters, lowercase)
        """
        canonical = cls.canonicalize(index, timestamp, value, prev_hash)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    @classmethod
    def verify_hash(
        cls,
        index: int,
        timestamp: datetime,
        value: str,
        prev_hash: str,
        expected_hash: str,
    ) -> bool:
        """
        Verify that vote fields match their expected hash.

        Returns:
            True if hash matches, False otherwise (including unhashable input)
        """
        try:
            computed = cls.derive_hash(index, timestamp, value, prev_hash)
        except CanonicalSerializationError:
            return False
        return cls._constant_time_compare(computed, expected_hash)

    @staticmethod
    def _constant_time_compare(a: str, b: str) -> bool:
        """
        Compare two strings in constant time.

        Prevents timing attacks where an attacker could learn
        about the hash by measuring comparison time.
        """
        if len(a) != len(b):
            return False

        result = 0
        for x, y in zip(a, b):
            result |= ord(x) ^ ord(y)

        return result == 0


def derive_hash(index: int, timestamp: datetime, value: str, prev_hash: str) -> str:
    """Module-level shortcut for Hasher.derive_hash."""
    return Hasher.derive_hash(index, timestamp, value, prev_hash)
