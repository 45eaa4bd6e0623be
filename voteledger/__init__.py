"""
VoteLedger - an append-only, hash-linked ledger of votes served over HTTP.
"""

__version__ = "0.1.0"
