"""
Tests for the ballot caster.
"""
import asyncio

import pytest

from ledgervote.core.errors import (
    AlreadyVoted,
    LedgerUnavailable,
    NotActive,
    Unauthorized,
    UnknownCandidate,
)
from ledgervote.schemas.ledger import VotingPeriodView
from ledgervote.services.ballot_caster import BallotCaster, BallotState
from ledgervote.services.clock import ClockReconciler
from ledgervote.services.identity import LocalWalletSession
from ledgervote.services.retry import RetryPolicy

from conftest import T0, VOTER


@pytest.fixture
def caster(mock_ledger, no_sleep) -> BallotCaster:
    return BallotCaster(
        mock_ledger,
        outcome_retry=RetryPolicy(max_attempts=3, interval=1.0),
        sleep=no_sleep,
    )


class TestBallotCaster:
    """Advisory pre-checks and submission outcomes."""

    @pytest.mark.asyncio
    async def test_confirmed_vote(self, caster, mock_ledger):
        result = await caster.cast(1)

        assert result.state == BallotState.CONFIRMED
        assert result.confirmation_id == "0x" + "1" * 64
        assert not result.already_voted
        assert caster.state_for(VOTER) == BallotState.CONFIRMED
        mock_ledger.vote.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_already_voted_short_circuits(self, caster, mock_ledger):
        mock_ledger.has_voted.return_value = True

        result = await caster.cast(1)

        assert result.state == BallotState.CONFIRMED
        assert result.already_voted
        assert result.message == "You have already voted"
        mock_ledger.vote.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_candidate_blocks_locally(self, caster, mock_ledger):
        result = await caster.cast(9)

        assert result.state == BallotState.REJECTED
        assert isinstance(result.error, UnknownCandidate)
        mock_ledger.vote.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_inactive_period_does_not_block(self, caster, mock_ledger):
        mock_ledger.get_voting_period.return_value = VotingPeriodView(
            start_time=T0 + 10, end_time=T0 + 70, active=False,
        )

        result = await caster.cast(0)

        assert result.state == BallotState.CONFIRMED
        mock_ledger.vote.assert_awaited_once_with(0)

    @pytest.mark.asyncio
    async def test_ledger_already_voted_is_benign(self, caster, mock_ledger):
        mock_ledger.vote.side_effect = AlreadyVoted("raced")

        first = await caster.cast(0)
        second = await caster.cast(0)

        assert first.state == second.state == BallotState.CONFIRMED
        assert first.already_voted and second.already_voted

    @pytest.mark.asyncio
    async def test_ledger_rejection_is_terminal(self, caster, mock_ledger):
        mock_ledger.vote.side_effect = NotActive("ended")

        result = await caster.cast(0)

        assert result.state == BallotState.REJECTED
        assert isinstance(result.error, NotActive)
        assert result.message == "Voting is not active yet. Try again in a second."
        assert mock_ledger.vote.await_count == 1

    @pytest.mark.asyncio
    async def test_precheck_failure_defers_to_ledger(self, caster, mock_ledger):
        mock_ledger.has_voted.side_effect = [LedgerUnavailable(), False]

        result = await caster.cast(0)

        assert result.state == BallotState.CONFIRMED
        mock_ledger.vote.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_outcome_settles_by_polling(self, caster, mock_ledger, no_sleep):
        mock_ledger.vote.side_effect = LedgerUnavailable("timeout")
        # pre-check, then two polls before the vote shows up
        mock_ledger.has_voted.side_effect = [False, False, True]

        result = await caster.cast(0)

        assert result.state == BallotState.CONFIRMED
        assert mock_ledger.vote.await_count == 1
        assert no_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_unknown_outcome_stays_pending(self, caster, mock_ledger):
        mock_ledger.vote.side_effect = LedgerUnavailable("timeout")
        mock_ledger.has_voted.return_value = False

        result = await caster.cast(0)

        assert result.state == BallotState.PENDING
        assert isinstance(result.error, LedgerUnavailable)
        assert caster.state_for(VOTER) == BallotState.PENDING
        assert mock_ledger.vote.await_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_duplicates_submit_once(self, caster, mock_ledger):
        release = asyncio.Event()
        receipt = mock_ledger.vote.return_value

        async def slow_vote(candidate_id):
            await release.wait()
            return receipt

        mock_ledger.vote.side_effect = slow_vote

        first = asyncio.ensure_future(caster.cast(0))
        second = asyncio.ensure_future(caster.cast(1))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert caster.is_submitting(VOTER)

        release.set()
        results = await asyncio.gather(first, second)

        assert results[0] == results[1]
        assert mock_ledger.vote.await_count == 1
        assert not caster.is_submitting(VOTER)

    @pytest.mark.asyncio
    async def test_requires_connected_identity(self, caster, mock_ledger):
        mock_ledger.session = LocalWalletSession(None)

        with pytest.raises(Unauthorized):
            await caster.cast(0)


class TestBallotCasterAgainstLedger:
    """End to end against the ledger host."""

    @pytest.mark.asyncio
    async def test_local_clock_cannot_override_ledger_end(
        self,
        owner_ledger,
        voter_ledger,
        ledger_clock,
        no_sleep,
    ):
        await owner_ledger.add_candidate("Alice")
        await owner_ledger.set_voting_period(T0, T0 + 60)
        ledger_clock.advance(60)
        local = ClockReconciler(voter_ledger, clock=lambda: T0 + 30, sleep=no_sleep)
        assert local.is_active_locally(await voter_ledger.get_voting_period())

        result = await BallotCaster(voter_ledger, sleep=no_sleep).cast(0)

        assert result.state == BallotState.REJECTED
        assert isinstance(result.error, NotActive)
        assert not await voter_ledger.has_voted(VOTER)

    @pytest.mark.asyncio
    async def test_repeat_submissions_record_one_vote(self, owner_ledger, voter_ledger, no_sleep):
        await owner_ledger.add_candidate("Alice")
        await owner_ledger.set_voting_period(T0, T0 + 60)
        caster = BallotCaster(voter_ledger, sleep=no_sleep)

        results = [await caster.cast(0) for _ in range(3)]

        assert results[0].confirmation_id is not None
        assert all(r.state == BallotState.CONFIRMED for r in results)
        assert all(r.already_voted for r in results[1:])
        assert (await voter_ledger.get_results()).counts == [1]
