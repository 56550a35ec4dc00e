"""
Ballot Caster: validates one vote intent and submits it to the ledger.

Per voting session the caster moves Idle -> Submitting -> Confirmed or
Rejected. A submission whose outcome is unknown (transport failure after
sending) is Pending until the ledger shows the vote, because a sent vote
cannot be taken back.
"""
import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import structlog

from ledgervote.core.config import settings
from ledgervote.core.errors import (
    AlreadyVoted,
    LedgerError,
    LedgerUnavailable,
    Unauthorized,
    UnknownCandidate,
)
from ledgervote.core.logging import bind_identity
from ledgervote.core.security import normalize_identity
from ledgervote.ledger.client import LedgerClient
from ledgervote.services.retry import RetryPolicy, Sleep


logger = structlog.get_logger(__name__)


class BallotState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class BallotResult:
    """Outcome of one cast attempt."""

    state: BallotState
    identity: str
    candidate_id: int
    confirmation_id: Optional[str] = None
    already_voted: bool = False
    error: Optional[LedgerError] = None

    @property
    def message(self) -> str:
        if self.state == BallotState.CONFIRMED:
            if self.already_voted:
                return AlreadyVoted().user_message
            return f"Vote cast successfully! Transaction: {self.confirmation_id}"
        if self.state == BallotState.PENDING:
            return "Your vote was sent and is awaiting confirmation"
        if self.error is not None:
            return self.error.user_message
        return ""


@dataclass(frozen=True)
class _Precheck:
    has_voted: Optional[bool]
    candidate_known: Optional[bool]


class BallotCaster:
    """Service for casting a voter's single ballot per round."""

    def __init__(
        self,
        ledger: LedgerClient,
        outcome_retry: Optional[RetryPolicy] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.ledger = ledger
        self.outcome_retry = outcome_retry or RetryPolicy(
            max_attempts=settings.RESULT_RETRY_ATTEMPTS,
            interval=settings.RESULT_RETRY_INTERVAL_SECONDS,
            backoff=settings.RESULT_RETRY_BACKOFF,
        )
        self.sleep = sleep
        self._states: Dict[str, BallotState] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}

    def state_for(self, identity: str) -> BallotState:
        return self._states.get(normalize_identity(identity), BallotState.IDLE)

    def is_submitting(self, identity: str) -> bool:
        return normalize_identity(identity) in self._in_flight

    def reset(self, identity: Optional[str] = None) -> None:
        """Drop per-voter state; in-flight submissions keep running."""
        if identity is None:
            self._states.clear()
        else:
            self._states.pop(normalize_identity(identity), None)

    async def cast(self, candidate_id: int) -> BallotResult:
        """
        Cast the connected identity's vote.

        A second call for the same voter while one is in flight does not
        submit again; it waits for and returns the first call's outcome.
        Cancelling the caller does not cancel the submission.
        """
        session = self.ledger.session
        identity = session.current_identity() if session else None
        if not identity:
            raise Unauthorized("Please connect your wallet to vote")
        identity = normalize_identity(identity)

        task = self._in_flight.get(identity)
        if task is not None:
            bind_identity(logger, identity).info("vote_duplicate_suppressed", candidate_id=candidate_id)
            return await asyncio.shield(task)

        task = asyncio.ensure_future(self._cast(identity, candidate_id))
        self._in_flight[identity] = task
        task.add_done_callback(lambda _: self._in_flight.pop(identity, None))
        return await asyncio.shield(task)

    async def _precheck(self, identity: str, candidate_id: int) -> _Precheck:
        """Advisory reads; a failed read is simply unknown."""
        try:
            has_voted, candidates = await asyncio.gather(
                self.ledger.has_voted(identity),
                self.ledger.get_candidates(),
            )
        except LedgerUnavailable as e:
            bind_identity(logger, identity).warning("vote_precheck_unavailable", error=str(e))
            return _Precheck(has_voted=None, candidate_known=None)
        return _Precheck(
            has_voted=has_voted,
            candidate_known=candidate_id in candidates.ids,
        )

    def _finish(self, result: BallotResult) -> BallotResult:
        self._states[result.identity] = result.state
        bind_identity(logger, result.identity).info(
            "vote_finished",
            candidate_id=result.candidate_id,
            state=result.state.value,
            already_voted=result.already_voted,
            error=result.error.kind if result.error else None,
        )
        return result

    async def _cast(self, identity: str, candidate_id: int) -> BallotResult:
        self._states[identity] = BallotState.SUBMITTING

        # Only a definitive "already voted" or "unknown candidate" blocks
        # locally. A period that looks inactive is left to the ledger,
        # whose clock may have crossed the boundary by the time it writes.
        precheck = await self._precheck(identity, candidate_id)
        if precheck.has_voted:
            return self._finish(BallotResult(
                BallotState.CONFIRMED, identity, candidate_id, already_voted=True,
            ))
        if precheck.candidate_known is False:
            return self._finish(BallotResult(
                BallotState.REJECTED, identity, candidate_id,
                error=UnknownCandidate(f"Candidate {candidate_id} is not registered"),
            ))

        try:
            receipt = await self.ledger.vote(candidate_id)
        except AlreadyVoted:
            return self._finish(BallotResult(
                BallotState.CONFIRMED, identity, candidate_id, already_voted=True,
            ))
        except LedgerUnavailable as e:
            return self._finish(await self._settle(identity, candidate_id, e))
        except LedgerError as e:
            return self._finish(BallotResult(
                BallotState.REJECTED, identity, candidate_id, error=e,
            ))

        return self._finish(BallotResult(
            BallotState.CONFIRMED, identity, candidate_id,
            confirmation_id=receipt.confirmation_id,
        ))

    async def _settle(
        self,
        identity: str,
        candidate_id: int,
        error: LedgerUnavailable,
    ) -> BallotResult:
        """Poll the ledger for the outcome of a vote that may have landed."""
        self._states[identity] = BallotState.PENDING
        bind_identity(logger, identity).warning("vote_outcome_unknown", error=str(error))

        try:
            voted = await self.outcome_retry.until(
                self.ledger.has_voted,
                lambda has_voted: has_voted,
                identity,
                sleep=self.sleep,
            )
        except LedgerUnavailable:
            voted = False

        if voted:
            return BallotResult(BallotState.CONFIRMED, identity, candidate_id)
        return BallotResult(BallotState.PENDING, identity, candidate_id, error=error)
