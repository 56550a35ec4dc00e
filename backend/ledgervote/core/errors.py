"""
Ledger error taxonomy.

Every failure the ledger or the client core can report is one of the
kinds below. Terminal kinds are surfaced verbatim and never retried;
transient kinds are eligible for bounded retry.
"""
from typing import Dict, Optional, Type


USER_MESSAGES: Dict[str, str] = {
    "Unauthorized": "Only the owner or admin can perform this action",
    "PeriodActive": "Candidates and the voting period cannot change while voting is active",
    "InvalidWindow": "End time must be after start time",
    "NotActive": "Voting is not active yet. Try again in a second.",
    "AlreadyVoted": "You have already voted",
    "UnknownCandidate": "The selected candidate is not registered",
    "NotFound": "Candidate not found",
    "InvalidRequest": "The ledger rejected the request as malformed",
    "LedgerUnavailable": "The ledger is unreachable. Retrying...",
    "ClockUnresolved": "Could not confirm ledger time. Retrying...",
}


class LedgerError(Exception):
    """Base class for every ledger error kind."""

    kind: str = "LedgerError"
    transient: bool = False

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or USER_MESSAGES.get(self.kind, self.kind)
        super().__init__(self.detail)

    @property
    def user_message(self) -> str:
        """Specific, non-generic message for this error kind."""
        return USER_MESSAGES.get(self.kind, self.detail)

    def to_payload(self) -> Dict[str, str]:
        return {"error": self.kind, "detail": self.detail}


class Unauthorized(LedgerError):
    kind = "Unauthorized"


class PeriodActive(LedgerError):
    kind = "PeriodActive"


class InvalidWindow(LedgerError):
    kind = "InvalidWindow"


class NotActive(LedgerError):
    kind = "NotActive"


class AlreadyVoted(LedgerError):
    """Terminal but benign: the voter's intent is already satisfied."""

    kind = "AlreadyVoted"


class UnknownCandidate(LedgerError):
    kind = "UnknownCandidate"


class NotFound(LedgerError):
    kind = "NotFound"


class InvalidRequest(LedgerError):
    """Malformed arguments, e.g. a blank candidate name."""

    kind = "InvalidRequest"


class LedgerUnavailable(LedgerError):
    """Transport failure or timeout talking to the ledger."""

    kind = "LedgerUnavailable"
    transient = True


class ClockUnresolved(LedgerError):
    """Authoritative ledger time could not be obtained."""

    kind = "ClockUnresolved"
    transient = True


ERROR_KINDS: Dict[str, Type[LedgerError]] = {
    cls.kind: cls
    for cls in (
        Unauthorized,
        PeriodActive,
        InvalidWindow,
        NotActive,
        AlreadyVoted,
        UnknownCandidate,
        NotFound,
        InvalidRequest,
        LedgerUnavailable,
        ClockUnresolved,
    )
}


def error_from_payload(kind: str, detail: Optional[str] = None) -> LedgerError:
    """Rebuild a typed error from an RPC error body.

    Unknown kinds are treated as a transport-level failure since the
    client cannot interpret them.
    """
    error_cls = ERROR_KINDS.get(kind)
    if error_cls is None:
        return LedgerUnavailable(f"Unrecognized ledger error {kind!r}: {detail}")
    return error_cls(detail)


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, LedgerError) and exc.transient
