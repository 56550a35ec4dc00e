"""
Results Resolver: tally, winner and tie detection, finality retry.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

import structlog

from ledgervote.core.config import settings
from ledgervote.ledger.client import LedgerClient
from ledgervote.schemas.ledger import VotingPeriodView
from ledgervote.services.clock import ClockReconciler
from ledgervote.services.retry import RetryPolicy, Sleep
from ledgervote.services.tally import ElectionOutcome, decide_outcome


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CandidateResult:
    """One row of the results table."""

    candidate_id: int
    name: str
    votes: int
    percentage: float


class ResultsResolver:
    """
    Reads the ledger's per-round counts and decides the outcome.

    Nothing is cached between calls; every tally is a fresh ledger read
    for the current round.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        clock: ClockReconciler,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.ledger = ledger
        self.clock = clock
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=settings.RESULT_RETRY_ATTEMPTS,
            interval=settings.RESULT_RETRY_INTERVAL_SECONDS,
            backoff=settings.RESULT_RETRY_BACKOFF,
        )
        self.sleep = sleep

    async def tally(self) -> Dict[int, int]:
        """Vote count per candidate id for the current round."""
        table = await self.ledger.get_results()
        return dict(zip(table.ids, table.counts))

    async def results(self) -> List[CandidateResult]:
        table = await self.ledger.get_results()
        total = sum(table.counts)
        return [
            CandidateResult(
                candidate_id=candidate_id,
                name=name,
                votes=count,
                percentage=round(count / total * 100, 2) if total > 0 else 0.0,
            )
            for candidate_id, name, count in zip(table.ids, table.names, table.counts)
        ]

    async def resolve(self) -> ElectionOutcome:
        """Single read of the current outcome, settled or not."""
        table = await self.ledger.get_results()
        outcome = decide_outcome(table.ids, table.names, table.counts)
        logger.debug(
            "outcome_read",
            round=table.round,
            kind=outcome.kind.value,
            names=outcome.names,
        )
        return outcome

    async def resolve_final(self) -> ElectionOutcome:
        """
        Re-read until a winner or tie shows up, or attempts run out.

        A freshly ended period can briefly report no winner while the
        ledger settles. Once the retry budget is spent the last observed
        outcome is returned as final.
        """
        outcome = await self.retry_policy.until(
            self.resolve,
            lambda result: result.is_settled,
            sleep=self.sleep,
        )
        logger.info(
            "outcome_final",
            kind=outcome.kind.value,
            names=outcome.names,
            max_votes=outcome.max_votes,
        )
        return outcome

    async def resolve_if_ended(self, period: VotingPeriodView) -> Optional[ElectionOutcome]:
        """Final outcome, but only once the ledger clock has passed the end."""
        if not await self.clock.confirm_ended(period):
            logger.info("outcome_deferred", end_time=period.end_time)
            return None
        return await self.resolve_final()
