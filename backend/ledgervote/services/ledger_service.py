"""
Authoritative election ledger.

All writes go through a single sequencer lock and are committed in one
transaction each, so the ledger observes a total order of writes. The
ledger clock, not the caller's clock, decides whether the voting period
is active.
"""
import asyncio
import time
from typing import Callable, List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ledgervote.core.config import settings
from ledgervote.core.errors import (
    AlreadyVoted,
    InvalidRequest,
    InvalidWindow,
    NotActive,
    NotFound,
    PeriodActive,
    Unauthorized,
    UnknownCandidate,
)
from ledgervote.core.security import generate_confirmation_id, normalize_identity
from ledgervote.models.ledger import Candidate, FactType, LedgerFact, LedgerState, VoteRecord
from ledgervote.schemas.ledger import (
    CandidateList,
    ClockView,
    ResultsTable,
    RolesView,
    TransactionReceipt,
    VotingPeriodView,
    WinnersView,
)
from ledgervote.services.tally import ElectionOutcome, decide_outcome


logger = structlog.get_logger(__name__)


def system_clock() -> int:
    """Wall-clock time in whole unix seconds."""
    return int(time.time())


class LedgerSequencer:
    """
    Serializes ledger writes and owns the ledger clock.

    One instance lives for the lifetime of the ledger host and is shared by
    every request.
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        self.clock = clock or system_clock
        self.lock = asyncio.Lock()

    def now(self) -> int:
        return int(self.clock())


class ElectionLedgerService:
    """Service for ledger transactions and queries."""

    STATE_ID = 1

    def __init__(self, db: AsyncSession, sequencer: LedgerSequencer):
        self.db = db
        self.sequencer = sequencer

    # ---------- State helpers ----------

    async def _get_state(self) -> LedgerState:
        """Load the ledger header, creating it on first use."""
        state = await self.db.get(LedgerState, self.STATE_ID)
        if state is None:
            state = LedgerState(
                id=self.STATE_ID,
                owner=normalize_identity(settings.LEDGER_OWNER),
                admin=None,
                current_round=0,
                start_time=0,
                end_time=0,
                next_candidate_id=0,
                block_number=0,
            )
            self.db.add(state)
            await self.db.flush()
        return state

    async def bootstrap(self) -> LedgerState:
        """Create and commit the ledger header if it does not exist yet."""
        async with self.sequencer.lock:
            state = await self._get_state()
            await self.db.commit()
        return state

    @staticmethod
    def _require_admin(state: LedgerState, caller: str) -> None:
        if caller != state.owner and caller != state.admin:
            raise Unauthorized(f"{caller} is neither owner nor admin")

    @staticmethod
    def _require_inactive(state: LedgerState, now: int) -> None:
        if state.is_active_at(now):
            raise PeriodActive(
                f"Voting period [{state.start_time}, {state.end_time}) is active"
            )

    async def _commit_fact(
        self,
        state: LedgerState,
        fact_type: FactType,
        caller: str,
        payload: dict,
        now: int,
        confirmation_id: Optional[str] = None,
    ) -> TransactionReceipt:
        """Advance the block, record the fact and commit the transaction."""
        state.block_number += 1
        if confirmation_id is None:
            confirmation_id = generate_confirmation_id(
                fact_type.value,
                [caller, *payload.values()],
                state.block_number,
            )
        self.db.add(
            LedgerFact(
                fact_type=fact_type.value,
                confirmation_id=confirmation_id,
                block_number=state.block_number,
                caller=caller,
                payload=payload,
                timestamp=now,
            )
        )
        await self.db.commit()

        logger.info(
            "ledger_fact",
            fact=fact_type.value,
            caller=caller,
            block=state.block_number,
            **payload,
        )
        return TransactionReceipt(
            confirmation_id=confirmation_id,
            block_number=state.block_number,
            timestamp=now,
        )

    # ---------- Writes ----------

    async def add_candidate(self, caller: str, name: str) -> TransactionReceipt:
        """Register a candidate with a fresh, never reused id."""
        caller = normalize_identity(caller)
        name = name.strip()
        if not name:
            raise InvalidRequest("Candidate name must not be empty")

        async with self.sequencer.lock:
            state = await self._get_state()
            now = self.sequencer.now()
            self._require_admin(state, caller)
            self._require_inactive(state, now)

            candidate_id = state.next_candidate_id
            state.next_candidate_id = candidate_id + 1
            self.db.add(
                Candidate(
                    id=candidate_id,
                    name=name,
                    created_round=state.current_round,
                )
            )
            return await self._commit_fact(
                state,
                FactType.CANDIDATE_ADDED,
                caller,
                {"candidate_id": candidate_id, "name": name},
                now,
            )

    async def remove_candidate(self, caller: str, candidate_id: int) -> TransactionReceipt:
        """Remove a candidate; surviving ids are not renumbered."""
        caller = normalize_identity(caller)

        async with self.sequencer.lock:
            state = await self._get_state()
            now = self.sequencer.now()
            self._require_admin(state, caller)
            self._require_inactive(state, now)

            candidate = await self.db.get(Candidate, candidate_id)
            if candidate is None:
                raise NotFound(f"Candidate {candidate_id} not found")

            await self.db.delete(candidate)
            return await self._commit_fact(
                state,
                FactType.CANDIDATE_REMOVED,
                caller,
                {"candidate_id": candidate_id},
                now,
            )

    async def set_voting_period(
        self,
        caller: str,
        start_time: int,
        end_time: int
    ) -> TransactionReceipt:
        """Overwrite the voting period and open a new round."""
        caller = normalize_identity(caller)

        async with self.sequencer.lock:
            state = await self._get_state()
            now = self.sequencer.now()
            self._require_admin(state, caller)
            if end_time <= start_time:
                raise InvalidWindow(
                    f"End time {end_time} must be after start time {start_time}"
                )
            self._require_inactive(state, now)

            state.start_time = start_time
            state.end_time = end_time
            state.current_round += 1
            return await self._commit_fact(
                state,
                FactType.VOTING_PERIOD_SET,
                caller,
                {
                    "start_time": start_time,
                    "end_time": end_time,
                    "round": state.current_round,
                },
                now,
            )

    async def clear_voting_period(self, caller: str) -> TransactionReceipt:
        """Reset the voting period to empty. The round counter is untouched."""
        caller = normalize_identity(caller)

        async with self.sequencer.lock:
            state = await self._get_state()
            now = self.sequencer.now()
            self._require_admin(state, caller)

            state.start_time = 0
            state.end_time = 0
            return await self._commit_fact(
                state,
                FactType.VOTING_PERIOD_CLEARED,
                caller,
                {"round": state.current_round},
                now,
            )

    async def set_admin(self, caller: str, identity: str) -> TransactionReceipt:
        """Owner-only: designate the admin identity."""
        caller = normalize_identity(caller)
        identity = normalize_identity(identity)

        async with self.sequencer.lock:
            state = await self._get_state()
            now = self.sequencer.now()
            if caller != state.owner:
                raise Unauthorized(f"{caller} is not the owner")

            state.admin = identity
            return await self._commit_fact(
                state,
                FactType.ADMIN_SET,
                caller,
                {"admin": identity},
                now,
            )

    async def vote(self, caller: str, candidate_id: int) -> TransactionReceipt:
        """
        Record the caller's vote for the current round.

        Raises:
            NotActive: the ledger clock is outside [start, end)
            AlreadyVoted: a record exists for (caller, current round)
            UnknownCandidate: the candidate id is not registered
        """
        caller = normalize_identity(caller)

        async with self.sequencer.lock:
            state = await self._get_state()
            now = self.sequencer.now()
            if not state.is_active_at(now):
                raise NotActive(
                    f"Ledger time {now} is outside [{state.start_time}, {state.end_time})"
                )

            round_number = state.current_round
            existing = await self.db.execute(
                select(VoteRecord.id).where(
                    VoteRecord.voter == caller,
                    VoteRecord.round == round_number,
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise AlreadyVoted(f"{caller} already voted in round {round_number}")

            candidate = await self.db.get(Candidate, candidate_id)
            if candidate is None:
                raise UnknownCandidate(f"Candidate {candidate_id} is not registered")

            confirmation_id = generate_confirmation_id(
                FactType.VOTE_CAST.value,
                [caller, candidate_id, round_number],
                state.block_number + 1,
            )
            self.db.add(
                VoteRecord(
                    voter=caller,
                    round=round_number,
                    candidate_id=candidate_id,
                    confirmation_id=confirmation_id,
                    cast_at=now,
                )
            )
            try:
                return await self._commit_fact(
                    state,
                    FactType.VOTE_CAST,
                    caller,
                    {"candidate_id": candidate_id, "round": round_number},
                    now,
                    confirmation_id=confirmation_id,
                )
            except IntegrityError:
                await self.db.rollback()
                raise AlreadyVoted(f"{caller} already voted in round {round_number}")

    # ---------- Queries ----------

    async def get_candidates(self) -> CandidateList:
        result = await self.db.execute(select(Candidate).order_by(Candidate.id))
        candidates = result.scalars().all()
        return CandidateList(
            ids=[c.id for c in candidates],
            names=[c.name for c in candidates],
        )

    async def get_candidate_count(self) -> int:
        result = await self.db.execute(select(func.count(Candidate.id)))
        return result.scalar() or 0

    async def get_results(self) -> ResultsTable:
        """Vote counts per registered candidate for the current round."""
        state = await self._get_state()
        candidates = await self.get_candidates()

        result = await self.db.execute(
            select(VoteRecord.candidate_id, func.count(VoteRecord.id))
            .where(VoteRecord.round == state.current_round)
            .group_by(VoteRecord.candidate_id)
        )
        counts = {candidate_id: count for candidate_id, count in result.all()}

        return ResultsTable(
            round=state.current_round,
            ids=candidates.ids,
            names=candidates.names,
            counts=[counts.get(candidate_id, 0) for candidate_id in candidates.ids],
        )

    async def get_voting_period(self) -> VotingPeriodView:
        state = await self._get_state()
        return VotingPeriodView(
            start_time=state.start_time,
            end_time=state.end_time,
            active=state.is_active_at(self.sequencer.now()),
        )

    async def is_voting_period_active(self) -> bool:
        period = await self.get_voting_period()
        return period.active

    async def has_voted(self, identity: str) -> bool:
        """Whether ``identity`` has a vote recorded in the current round."""
        identity = normalize_identity(identity)
        state = await self._get_state()
        if state.current_round == 0:
            return False
        result = await self.db.execute(
            select(VoteRecord.id).where(
                VoteRecord.voter == identity,
                VoteRecord.round == state.current_round,
            )
        )
        return result.scalar_one_or_none() is not None

    async def last_voted_round(self, identity: str) -> int:
        """Highest round ``identity`` voted in, 0 if never."""
        identity = normalize_identity(identity)
        result = await self.db.execute(
            select(func.max(VoteRecord.round)).where(VoteRecord.voter == identity)
        )
        return result.scalar() or 0

    async def current_round(self) -> int:
        state = await self._get_state()
        return state.current_round

    async def ledger_clock_now(self) -> ClockView:
        state = await self._get_state()
        return ClockView(now=self.sequencer.now(), block_number=state.block_number)

    async def get_outcome(self) -> ElectionOutcome:
        results = await self.get_results()
        return decide_outcome(results.ids, results.names, results.counts)

    async def get_winner(self) -> str:
        """Single winner name, or 'No candidates' / 'No winner' (ties included)."""
        outcome = await self.get_outcome()
        return outcome.winner

    async def get_winners(self) -> WinnersView:
        outcome = await self.get_outcome()
        return WinnersView(names=outcome.names, ids=outcome.ids, max_votes=outcome.max_votes)

    async def get_roles(self) -> RolesView:
        state = await self._get_state()
        return RolesView(owner=state.owner, admin=state.admin)

    async def get_facts(self, limit: int = 100) -> List[LedgerFact]:
        """Most recent ledger facts, newest first."""
        result = await self.db.execute(
            select(LedgerFact).order_by(LedgerFact.block_number.desc()).limit(limit)
        )
        return list(result.scalars().all())
