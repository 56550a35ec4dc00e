"""
SQLAlchemy database models.
"""
from ledgervote.models.ledger import LedgerState, Candidate, VoteRecord, LedgerFact, FactType

__all__ = [
    "LedgerState",
    "Candidate",
    "VoteRecord",
    "LedgerFact",
    "FactType",
]
