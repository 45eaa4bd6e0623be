#!/usr/bin/env python3
"""
Vote Chain Verifier

A standalone tool to verify a vote chain export independently.
No server connection required - verification is cryptographic.

The export is the JSON array returned by GET /vote.

Usage:
    python verify.py chain.json
    python verify.py chain.json --verbose
    python verify.py chain.json --json
    curl -s localhost:9000/vote | python verify.py -

Exit codes:
    0 - VERIFIED: All checks passed
    1 - TAMPERED: Hash or linkage mismatch
    3 - INVALID_FORMAT: Export structure invalid
"""

import argparse
import hashlib
import json
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any


# ============================================================
# Result Types
# ============================================================

class VerificationResult(Enum):
    VERIFIED = "VERIFIED"
    TAMPERED = "TAMPERED"
    INVALID_FORMAT = "INVALID_FORMAT"


@dataclass
class VerificationReport:
    result: VerificationResult
    vote_count: int
    checks_passed: list[str]
    checks_failed: list[str]
    warnings: list[str]
    details: dict[str, Any]


# ============================================================
# Hash Input (matching voteledger/core/hasher.py)
# ============================================================

REQUIRED_FIELDS = ("index", "timestamp", "value", "hash", "prev_hash")


def canonical_timestamp(raw: str) -> str:
    """
    Normalize a wire timestamp to YYYY-MM-DDTHH:MM:SS.ffffffZ.

    MUST match voteledger/core/hasher.py exactly for hash verification to work.
    """
    if not isinstance(raw, str):
        raise TypeError(f"Timestamp must be a string, got {type(raw).__name__}")
    dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        raise ValueError(f"Timestamp is timezone-naive: {raw}")
    utc_dt = dt.astimezone(timezone.utc)
    return utc_dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc_dt.microsecond:06d}Z"


def compute_vote_hash(vote: dict) -> str:
    """Recompute a vote hash from its wire fields."""
    chain_input = (
        f"{vote['index']}{canonical_timestamp(vote['timestamp'])}"
        f"{vote['value']}{vote['prev_hash']}"
    )
    return hashlib.sha256(chain_input.encode("utf-8")).hexdigest()


# ============================================================
# Chain Verifier
# ============================================================

class ChainVerifier:
    """
    Verifies a vote chain export.
    """

    def __init__(self, chain: Any, verbose: bool = False):
        self.chain = chain
        self.verbose = verbose
        self.checks_passed = []
        self.checks_failed = []
        self.warnings = []
        self.details = {}

    def log(self, msg: str):
        if self.verbose:
            print(f"  {msg}")

    def verify(self) -> VerificationReport:
        """Run all verification checks."""

        # 1. Check export structure
        if not self._check_structure():
            return self._report(VerificationResult.INVALID_FORMAT)

        # 2. Check genesis
        if not self._verify_genesis():
            return self._report(VerificationResult.TAMPERED)

        # 3. Verify vote hashes
        if not self._verify_hashes():
            return self._report(VerificationResult.TAMPERED)

        # 4. Verify chain linkage
        if not self._verify_chain_linkage():
            return self._report(VerificationResult.TAMPERED)

        return self._report(VerificationResult.VERIFIED)

    def _check_structure(self) -> bool:
        """Verify export is a non-empty array of complete votes."""
        self.log("Checking export structure...")

        if not isinstance(self.chain, list):
            self.checks_failed.append("Export must be a JSON array of votes")
            return False

        if len(self.chain) == 0:
            self.checks_failed.append("Export has no votes")
            return False

        for i, vote in enumerate(self.chain):
            if not isinstance(vote, dict):
                self.checks_failed.append(f"Vote {i}: must be an object")
                return False
            missing = [k for k in REQUIRED_FIELDS if k not in vote]
            if missing:
                self.checks_failed.append(f"Vote {i}: missing required keys: {missing}")
                return False
            if isinstance(vote["index"], bool) or not isinstance(vote["index"], int):
                self.checks_failed.append(f"Vote {i}: index must be an integer")
                return False
            try:
                canonical_timestamp(vote["timestamp"])
            except (TypeError, ValueError) as e:
                self.checks_failed.append(f"Vote {i}: bad timestamp - {e}")
                return False

        self.checks_passed.append("Export structure valid")
        return True

    def _verify_genesis(self) -> bool:
        """Genesis must be index 0 with empty value and prev_hash."""
        self.log("Checking genesis vote...")

        genesis = self.chain[0]
        self.details["genesis_hash"] = genesis["hash"]

        if genesis["index"] != 0 or genesis["prev_hash"] != "" or genesis["value"] != "":
            self.checks_failed.append(
                "Genesis vote must have index 0, empty value and empty prev_hash"
            )
            return False

        self.checks_passed.append("Genesis vote shape valid")
        return True

    def _verify_hashes(self) -> bool:
        """Verify vote hashes are correct."""
        self.log("Verifying vote hashes...")

        all_valid = True

        for vote in self.chain:
            computed_hash = compute_vote_hash(vote)
            if computed_hash != vote["hash"]:
                self.checks_failed.append(
                    f"Vote {vote['index']}: Hash mismatch "
                    f"(computed={computed_hash[:16]}..., stored={str(vote['hash'])[:16]}...)"
                )
                all_valid = False
            else:
                self.log(f"  Vote {vote['index']}: Hash verified [OK]")

        if all_valid:
            self.checks_passed.append(f"All {len(self.chain)} vote hashes verified")

        return all_valid

    def _verify_chain_linkage(self) -> bool:
        """Verify index continuity and hash linkage between votes."""
        self.log("Verifying chain linkage...")

        all_valid = True

        for i in range(1, len(self.chain)):
            prev_vote = self.chain[i - 1]
            curr_vote = self.chain[i]

            if curr_vote["index"] != prev_vote["index"] + 1:
                self.checks_failed.append(
                    f"Index gap at position {i}: {prev_vote['index']} -> {curr_vote['index']}"
                )
                all_valid = False

            if curr_vote["prev_hash"] != prev_vote["hash"]:
                self.checks_failed.append(
                    f"Chain break at position {i}: prev_hash doesn't match"
                )
                all_valid = False

        if all_valid:
            self.checks_passed.append("Chain linkage verified")
            self.details["tail_hash"] = self.chain[-1]["hash"]

        return all_valid

    def _report(self, result: VerificationResult) -> VerificationReport:
        """Generate verification report."""
        return VerificationReport(
            result=result,
            vote_count=len(self.chain) if isinstance(self.chain, list) else 0,
            checks_passed=self.checks_passed,
            checks_failed=self.checks_failed,
            warnings=self.warnings,
            details=self.details,
        )


# ============================================================
# CLI
# ============================================================

EXIT_CODES = {
    VerificationResult.VERIFIED: 0,
    VerificationResult.TAMPERED: 1,
    VerificationResult.INVALID_FORMAT: 3,
}


def print_report(report: VerificationReport, json_output: bool = False):
    """Print verification report."""

    if json_output:
        output = {
            "result": report.result.value,
            "vote_count": report.vote_count,
            "checks_passed": report.checks_passed,
            "checks_failed": report.checks_failed,
            "warnings": report.warnings,
            "details": report.details,
        }
        print(json.dumps(output, indent=2))
        return

    banners = {
        VerificationResult.VERIFIED: "[VERIFIED] - All checks passed",
        VerificationResult.TAMPERED: "[TAMPERED] - Hash or linkage mismatch detected",
        VerificationResult.INVALID_FORMAT: "[INVALID_FORMAT] - Export structure invalid",
    }
    print("\n" + "=" * 60)
    print(f"  {banners[report.result]}")
    print("=" * 60)

    print(f"\nVotes: {report.vote_count}")

    if report.checks_passed:
        print("\nPassed:")
        for check in report.checks_passed:
            print(f"  + {check}")

    if report.checks_failed:
        print("\nFailed:")
        for check in report.checks_failed:
            print(f"  - {check}")

    if report.warnings:
        print("\nWarnings:")
        for warning in report.warnings:
            print(f"  ! {warning}")

    print()


def load_chain(source: str) -> Any:
    """Load an export from a path, or stdin when source is '-'."""
    if source == "-":
        return json.load(sys.stdin)
    with open(Path(source), "r", encoding="utf-8") as f:
        return json.load(f)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Verify a VoteLedger chain export",
        epilog="Exit codes: 0=VERIFIED, 1=TAMPERED, 3=INVALID_FORMAT"
    )
    parser.add_argument(
        "chain",
        type=str,
        help="Path to the chain JSON file ('-' for stdin)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show detailed verification progress"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output result as JSON"
    )

    args = parser.parse_args(argv)

    try:
        chain = load_chain(args.chain)
    except FileNotFoundError:
        print(f"ERROR: File not found: {args.chain}")
        return EXIT_CODES[VerificationResult.INVALID_FORMAT]
    except json.JSONDecodeError as e:
        print(f"ERROR: Invalid JSON: {e}")
        return EXIT_CODES[VerificationResult.INVALID_FORMAT]

    report = ChainVerifier(chain, verbose=args.verbose).verify()
    print_report(report, json_output=args.json)

    return EXIT_CODES[report.result]


if __name__ == "__main__":
    sys.exit(main())
