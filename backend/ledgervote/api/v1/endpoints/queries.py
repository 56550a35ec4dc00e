"""
Read-only ledger query endpoints.
"""
from fastapi import APIRouter, Depends

from ledgervote.services.ledger_service import ElectionLedgerService
from ledgervote.schemas.ledger import (
    CandidateList,
    CandidateCount,
    ResultsTable,
    VotingPeriodView,
    RoundView,
    ClockView,
    WinnerView,
    WinnersView,
    RolesView,
)
from ledgervote.api.v1.deps import get_ledger_service


router = APIRouter()


@router.get("/candidates", response_model=CandidateList)
async def get_candidates(
    ledger: ElectionLedgerService = Depends(get_ledger_service)
) -> CandidateList:
    """Registered candidates ordered by id."""
    return await ledger.get_candidates()


@router.get("/candidates/count", response_model=CandidateCount)
async def get_candidate_count(
    ledger: ElectionLedgerService = Depends(get_ledger_service)
) -> CandidateCount:
    return CandidateCount(count=await ledger.get_candidate_count())


@router.get("/results", response_model=ResultsTable)
async def get_results(
    ledger: ElectionLedgerService = Depends(get_ledger_service)
) -> ResultsTable:
    """Vote counts for the current round."""
    return await ledger.get_results()


@router.get("/period", response_model=VotingPeriodView)
async def get_voting_period(
    ledger: ElectionLedgerService = Depends(get_ledger_service)
) -> VotingPeriodView:
    """
    The voting window.
    ``active`` is computed from the ledger clock at query time.
    """
    return await ledger.get_voting_period()


@router.get("/round", response_model=RoundView)
async def get_current_round(
    ledger: ElectionLedgerService = Depends(get_ledger_service)
) -> RoundView:
    return RoundView(current_round=await ledger.current_round())


@router.get("/clock", response_model=ClockView)
async def get_ledger_clock(
    ledger: ElectionLedgerService = Depends(get_ledger_service)
) -> ClockView:
    """The ledger's authoritative time and latest block number."""
    return await ledger.ledger_clock_now()


@router.get("/winner", response_model=WinnerView)
async def get_winner(
    ledger: ElectionLedgerService = Depends(get_ledger_service)
) -> WinnerView:
    """Single winner name, 'No candidates', or 'No winner' (also on ties)."""
    return WinnerView(winner=await ledger.get_winner())


@router.get("/winners", response_model=WinnersView)
async def get_winners(
    ledger: ElectionLedgerService = Depends(get_ledger_service)
) -> WinnersView:
    """All candidates sharing the maximum vote count."""
    return await ledger.get_winners()


@router.get("/roles", response_model=RolesView)
async def get_roles(
    ledger: ElectionLedgerService = Depends(get_ledger_service)
) -> RolesView:
    """Owner and admin identities."""
    return await ledger.get_roles()
