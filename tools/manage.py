#!/usr/bin/env python3
"""
VoteLedger Management CLI

Commands for operating the vote ledger:
- serve: Run the HTTP API
- hash-vote: Print the hash of a vote's fields
- verify-chain: Verify a chain export with the service's own validator

Usage:
    python -m tools.manage <command> [options]

Examples:
    python -m tools.manage serve --port 9000
    python -m tools.manage hash-vote --index 1 --timestamp 2024-01-15T12:30:45.123456Z --value yes --prev-hash <hash>
    python -m tools.manage verify-chain chain.json
"""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


def cmd_serve(args):
    """Run the HTTP API."""
    from voteledger.main import run

    argv = []
    if args.port is not None:
        argv += ["--port", str(args.port)]
    if args.host is not None:
        argv += ["--host", args.host]
    run(argv)


def cmd_hash_vote(args):
    """Print the hash of a vote's fields."""
    from voteledger.core import CanonicalSerializationError, Hasher

    try:
        timestamp = datetime.fromisoformat(args.timestamp.replace("Z", "+00:00"))
    except ValueError as e:
        print(f"ERROR: Invalid timestamp: {e}")
        return 1

    try:
        canonical = Hasher.canonicalize(args.index, timestamp, args.value, args.prev_hash)
    except CanonicalSerializationError as e:
        print(f"ERROR: {e}")
        return 1

    if args.verbose:
        print(f"Hash input: {canonical}")
    print(Hasher.derive_hash(args.index, timestamp, args.value, args.prev_hash))
    return 0


def cmd_verify_chain(args):
    """Verify the integrity of a chain export."""
    from pydantic import TypeAdapter, ValidationError

    from voteledger.core import find_chain_break
    from voteledger.schemas import Vote

    print(f"Loading chain from {args.chain}...")
    try:
        with open(args.chain, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"ERROR: Failed to read chain: {e}")
        return 3

    try:
        votes = TypeAdapter(list[Vote]).validate_python(raw)
    except ValidationError as e:
        print(f"ERROR: Export is not a list of votes: {e}")
        return 3

    print(f"Chain loaded: {len(votes)} votes")

    if not votes:
        print("[FAIL] Chain has no genesis vote")
        return 1

    position = find_chain_break(votes)
    if position is None:
        print("[OK] Chain integrity verified OK")
        print(f"  Chain head: {votes[-1].hash[:16]}...")
        return 0

    print(f"[FAIL] Chain integrity verification FAILED at position {position}!")
    return 1


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="VoteLedger Management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # serve
    p_serve = subparsers.add_parser(
        "serve",
        help="Run the HTTP API"
    )
    p_serve.add_argument("--port", type=int, help="API port (default: 9000)")
    p_serve.add_argument("--host", help="Interface to bind (default: 0.0.0.0)")

    # hash-vote
    p_hash = subparsers.add_parser(
        "hash-vote",
        help="Print the hash of a vote's fields"
    )
    p_hash.add_argument("--index", type=int, required=True, help="Vote index")
    p_hash.add_argument("--timestamp", required=True, help="ISO 8601 timestamp with timezone")
    p_hash.add_argument("--value", default="", help="Vote value")
    p_hash.add_argument("--prev-hash", default="", help="Predecessor hash")
    p_hash.add_argument("--verbose", "-v", action="store_true", help="Also print the hash input")

    # verify-chain
    p_verify = subparsers.add_parser(
        "verify-chain",
        help="Verify a chain export (JSON array from GET /vote)"
    )
    p_verify.add_argument("chain", help="Path to the chain JSON file")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "serve": cmd_serve,
        "hash-vote": cmd_hash_vote,
        "verify-chain": cmd_verify_chain,
    }

    return commands[args.command](args) or 0


if __name__ == "__main__":
    sys.exit(main())
