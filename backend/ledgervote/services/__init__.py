"""
Business logic services.

Client components (admin controller, ballot caster, results resolver,
reconciliation layer) depend on ``ledgervote.ledger.client`` and are
imported from their own modules.
"""
from ledgervote.services.ledger_service import ElectionLedgerService, LedgerSequencer
from ledgervote.services.retry import RetryPolicy
from ledgervote.services.tally import ElectionOutcome, OutcomeKind, decide_outcome

__all__ = [
    "ElectionLedgerService",
    "LedgerSequencer",
    "RetryPolicy",
    "ElectionOutcome",
    "OutcomeKind",
    "decide_outcome",
]
