"""
Tests for the election ledger state machine.
"""
import asyncio

import pytest

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
from ledgervote.models.ledger import FactType
from ledgervote.services.ledger_service import ElectionLedgerService
from ledgervote.services.tally import NO_CANDIDATES, NO_WINNER

from conftest import ADMIN, OTHER_VOTER, OUTSIDER, OWNER, T0, VOTER


async def add_candidates(ledger: ElectionLedgerService, *names: str) -> None:
    for name in names:
        await ledger.add_candidate(OWNER, name)


async def open_period(ledger: ElectionLedgerService, start: int = T0, duration: int = 3600) -> None:
    await ledger.set_voting_period(OWNER, start, start + duration)


class TestCandidateRegistry:
    """Candidate lifecycle and id issuance."""

    @pytest.mark.asyncio
    async def test_ids_are_issued_sequentially(self, ledger_service):
        await add_candidates(ledger_service, "Alice", "Bob", "Carol")

        candidates = await ledger_service.get_candidates()
        assert candidates.ids == [0, 1, 2]
        assert candidates.names == ["Alice", "Bob", "Carol"]
        assert await ledger_service.get_candidate_count() == 3

    @pytest.mark.asyncio
    async def test_removed_ids_are_never_reused(self, ledger_service):
        await add_candidates(ledger_service, "Alice", "Bob", "Carol")
        await ledger_service.remove_candidate(OWNER, 1)
        await ledger_service.add_candidate(OWNER, "Dave")

        candidates = await ledger_service.get_candidates()
        assert candidates.ids == [0, 2, 3]
        assert candidates.names == ["Alice", "Carol", "Dave"]

    @pytest.mark.asyncio
    async def test_add_requires_owner_or_admin(self, ledger_service):
        with pytest.raises(Unauthorized):
            await ledger_service.add_candidate(OUTSIDER, "Mallory")

        assert await ledger_service.get_candidate_count() == 0

    @pytest.mark.asyncio
    async def test_admin_may_add_after_owner_designates_it(self, ledger_service):
        await ledger_service.set_admin(OWNER, ADMIN)
        await ledger_service.add_candidate(ADMIN, "Alice")

        roles = await ledger_service.get_roles()
        assert roles.owner == OWNER
        assert roles.admin == ADMIN
        assert (await ledger_service.get_candidates()).names == ["Alice"]

    @pytest.mark.asyncio
    async def test_only_owner_sets_admin(self, ledger_service):
        await ledger_service.set_admin(OWNER, ADMIN)

        with pytest.raises(Unauthorized):
            await ledger_service.set_admin(ADMIN, OUTSIDER)

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, ledger_service):
        with pytest.raises(InvalidRequest):
            await ledger_service.add_candidate(OWNER, "   ")

    @pytest.mark.asyncio
    async def test_remove_unknown_candidate(self, ledger_service):
        await add_candidates(ledger_service, "Alice")

        with pytest.raises(NotFound):
            await ledger_service.remove_candidate(OWNER, 42)

    @pytest.mark.asyncio
    async def test_add_and_remove_blocked_while_active(self, ledger_service):
        await add_candidates(ledger_service, "Alice", "Bob")
        await open_period(ledger_service)

        with pytest.raises(PeriodActive):
            await ledger_service.add_candidate(OWNER, "Carol")
        with pytest.raises(PeriodActive):
            await ledger_service.remove_candidate(OWNER, 0)

        assert (await ledger_service.get_candidates()).ids == [0, 1]

    @pytest.mark.asyncio
    async def test_mutation_allowed_once_period_ends(self, ledger_service, ledger_clock):
        await add_candidates(ledger_service, "Alice")
        await open_period(ledger_service, duration=60)
        ledger_clock.advance(60)

        await ledger_service.add_candidate(OWNER, "Bob")
        assert (await ledger_service.get_candidates()).names == ["Alice", "Bob"]


class TestVotingPeriod:
    """Voting window and round counter."""

    @pytest.mark.asyncio
    async def test_set_increments_round_and_clear_does_not(self, ledger_service):
        assert await ledger_service.current_round() == 0

        await open_period(ledger_service, start=T0 + 100)
        assert await ledger_service.current_round() == 1

        await ledger_service.clear_voting_period(OWNER)
        assert await ledger_service.current_round() == 1

        await open_period(ledger_service, start=T0 + 100)
        assert await ledger_service.current_round() == 2

    @pytest.mark.asyncio
    async def test_cleared_period_is_empty(self, ledger_service):
        await open_period(ledger_service)
        await ledger_service.clear_voting_period(OWNER)

        period = await ledger_service.get_voting_period()
        assert (period.start_time, period.end_time, period.active) == (0, 0, False)

    @pytest.mark.asyncio
    async def test_period_starting_at_epoch_is_active(self, ledger_service):
        await ledger_service.set_voting_period(OWNER, 0, T0 + 100)

        period = await ledger_service.get_voting_period()
        assert period.active
        assert await ledger_service.current_round() == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start,end", [(T0 + 100, T0 + 100), (T0 + 100, T0 + 50)])
    async def test_invalid_window(self, ledger_service, start, end):
        with pytest.raises(InvalidWindow):
            await ledger_service.set_voting_period(OWNER, start, end)

        assert await ledger_service.current_round() == 0

    @pytest.mark.asyncio
    async def test_set_requires_owner_or_admin(self, ledger_service):
        with pytest.raises(Unauthorized):
            await ledger_service.set_voting_period(OUTSIDER, T0, T0 + 60)
        with pytest.raises(Unauthorized):
            await ledger_service.clear_voting_period(OUTSIDER)

    @pytest.mark.asyncio
    async def test_cannot_reset_an_active_period(self, ledger_service):
        await open_period(ledger_service)

        with pytest.raises(PeriodActive):
            await open_period(ledger_service, start=T0 + 10)
        assert await ledger_service.current_round() == 1

    @pytest.mark.asyncio
    async def test_active_is_computed_from_ledger_clock(self, ledger_service, ledger_clock):
        await open_period(ledger_service, start=T0 + 10, duration=10)

        assert not await ledger_service.is_voting_period_active()
        ledger_clock.advance(10)
        assert await ledger_service.is_voting_period_active()
        ledger_clock.advance(10)
        assert not await ledger_service.is_voting_period_active()


class TestVoting:
    """Casting votes against the window and the one-vote rule."""

    @pytest.mark.asyncio
    async def test_vote_at_start_succeeds(self, ledger_service):
        await add_candidates(ledger_service, "Alice")
        await open_period(ledger_service, start=T0)

        receipt = await ledger_service.vote(VOTER, 0)

        assert receipt.confirmation_id.startswith("0x")
        assert receipt.timestamp == T0
        assert await ledger_service.has_voted(VOTER)

    @pytest.mark.asyncio
    async def test_vote_at_end_fails(self, ledger_service, ledger_clock):
        await add_candidates(ledger_service, "Alice")
        await open_period(ledger_service, duration=60)
        ledger_clock.advance(60)

        with pytest.raises(NotActive):
            await ledger_service.vote(VOTER, 0)

    @pytest.mark.asyncio
    async def test_vote_before_start_fails(self, ledger_service):
        await add_candidates(ledger_service, "Alice")
        await open_period(ledger_service, start=T0 + 1)

        with pytest.raises(NotActive):
            await ledger_service.vote(VOTER, 0)

    @pytest.mark.asyncio
    async def test_vote_without_period_fails(self, ledger_service):
        await add_candidates(ledger_service, "Alice")

        with pytest.raises(NotActive):
            await ledger_service.vote(VOTER, 0)

    @pytest.mark.asyncio
    async def test_unknown_candidate(self, ledger_service):
        await add_candidates(ledger_service, "Alice")
        await open_period(ledger_service)

        with pytest.raises(UnknownCandidate):
            await ledger_service.vote(VOTER, 9)
        assert not await ledger_service.has_voted(VOTER)

    @pytest.mark.asyncio
    async def test_repeated_vote_is_idempotent(self, ledger_service):
        await add_candidates(ledger_service, "Alice", "Bob")
        await open_period(ledger_service)
        await ledger_service.vote(VOTER, 0)

        for candidate_id in (0, 1, 0):
            with pytest.raises(AlreadyVoted):
                await ledger_service.vote(VOTER, candidate_id)

        results = await ledger_service.get_results()
        assert results.counts == [1, 0]

    @pytest.mark.asyncio
    async def test_concurrent_duplicates_record_one_vote(self, session_maker, sequencer):
        async with session_maker() as session:
            setup = ElectionLedgerService(session, sequencer)
            await setup.add_candidate(OWNER, "Alice")
            await setup.set_voting_period(OWNER, T0, T0 + 3600)

        async def attempt():
            async with session_maker() as session:
                return await ElectionLedgerService(session, sequencer).vote(VOTER, 0)

        outcomes = await asyncio.gather(*(attempt() for _ in range(5)), return_exceptions=True)

        accepted = [o for o in outcomes if not isinstance(o, Exception)]
        rejected = [o for o in outcomes if isinstance(o, AlreadyVoted)]
        assert len(accepted) == 1
        assert len(rejected) == 4

        async with session_maker() as session:
            results = await ElectionLedgerService(session, sequencer).get_results()
        assert results.counts == [1]

    @pytest.mark.asyncio
    async def test_new_round_restores_eligibility(self, ledger_service, ledger_clock):
        await add_candidates(ledger_service, "Alice", "Bob")
        await open_period(ledger_service, duration=60)
        await ledger_service.vote(VOTER, 0)
        assert await ledger_service.last_voted_round(VOTER) == 1

        ledger_clock.advance(60)
        await open_period(ledger_service, start=ledger_clock.now, duration=60)

        assert await ledger_service.current_round() == 2
        assert not await ledger_service.has_voted(VOTER)

        await ledger_service.vote(VOTER, 1)
        assert await ledger_service.has_voted(VOTER)
        assert await ledger_service.last_voted_round(VOTER) == 2

        results = await ledger_service.get_results()
        assert results.round == 2
        assert results.counts == [0, 1]

    @pytest.mark.asyncio
    async def test_vote_fact_shares_confirmation_id(self, ledger_service):
        await add_candidates(ledger_service, "Alice")
        await open_period(ledger_service)

        receipt = await ledger_service.vote(VOTER, 0)

        facts = await ledger_service.get_facts(limit=1)
        assert facts[0].fact_type == FactType.VOTE_CAST.value
        assert facts[0].confirmation_id == receipt.confirmation_id
        assert facts[0].block_number == receipt.block_number

    @pytest.mark.asyncio
    async def test_identity_is_case_insensitive(self, ledger_service):
        await add_candidates(ledger_service, "Alice")
        await open_period(ledger_service)
        await ledger_service.vote(VOTER.upper(), 0)

        assert await ledger_service.has_voted(VOTER)
        with pytest.raises(AlreadyVoted):
            await ledger_service.vote(VOTER, 0)


class TestLedgerQueries:
    """Results, winner and clock queries."""

    @pytest.mark.asyncio
    async def test_no_candidates(self, ledger_service):
        assert await ledger_service.get_winner() == NO_CANDIDATES

    @pytest.mark.asyncio
    async def test_no_votes(self, ledger_service):
        await add_candidates(ledger_service, "Alice", "Bob")

        assert await ledger_service.get_winner() == NO_WINNER

    @pytest.mark.asyncio
    async def test_single_winner_and_tie(self, ledger_service):
        await add_candidates(ledger_service, "Alice", "Bob")
        await open_period(ledger_service)
        await ledger_service.vote(VOTER, 0)

        assert await ledger_service.get_winner() == "Alice"

        await ledger_service.vote(OTHER_VOTER, 1)
        assert await ledger_service.get_winner() == NO_WINNER
        winners = await ledger_service.get_winners()
        assert winners.names == ["Alice", "Bob"]
        assert winners.max_votes == 1

    @pytest.mark.asyncio
    async def test_clock_reports_ledger_time_and_block(self, ledger_service, ledger_clock):
        before = await ledger_service.ledger_clock_now()
        await add_candidates(ledger_service, "Alice")
        ledger_clock.advance(5)
        after = await ledger_service.ledger_clock_now()

        assert before.now == T0
        assert after.now == T0 + 5
        assert after.block_number == before.block_number + 1
