"""
Ledger administration endpoints.
Every write here requires the owner or admin identity.
"""
from fastapi import APIRouter, Depends

from ledgervote.services.ledger_service import ElectionLedgerService
from ledgervote.schemas.ledger import (
    AddCandidateRequest,
    RemoveCandidateRequest,
    SetVotingPeriodRequest,
    ClearVotingPeriodRequest,
    SetAdminRequest,
    TransactionReceipt,
)
from ledgervote.api.v1.deps import get_ledger_service, require_caller


router = APIRouter()


@router.post("/candidates", response_model=TransactionReceipt)
async def add_candidate(
    request: AddCandidateRequest,
    ledger: ElectionLedgerService = Depends(get_ledger_service),
    caller: str = Depends(require_caller)
) -> TransactionReceipt:
    """
    Register a candidate.
    Rejected while a voting period is active.
    """
    return await ledger.add_candidate(caller, request.name)


@router.post("/candidates/remove", response_model=TransactionReceipt)
async def remove_candidate(
    request: RemoveCandidateRequest,
    ledger: ElectionLedgerService = Depends(get_ledger_service),
    caller: str = Depends(require_caller)
) -> TransactionReceipt:
    """
    Remove a candidate.
    The id is retired, surviving candidates keep theirs.
    """
    return await ledger.remove_candidate(caller, request.candidate_id)


@router.post("/period", response_model=TransactionReceipt)
async def set_voting_period(
    request: SetVotingPeriodRequest,
    ledger: ElectionLedgerService = Depends(get_ledger_service),
    caller: str = Depends(require_caller)
) -> TransactionReceipt:
    """
    Set the voting window ``[start_time, end_time)``.
    Opens a new election round.
    """
    return await ledger.set_voting_period(caller, request.start_time, request.end_time)


@router.post("/period/clear", response_model=TransactionReceipt)
async def clear_voting_period(
    request: ClearVotingPeriodRequest,
    ledger: ElectionLedgerService = Depends(get_ledger_service),
    caller: str = Depends(require_caller)
) -> TransactionReceipt:
    """Reset the voting window. The round counter is not changed."""
    return await ledger.clear_voting_period(caller)


@router.post("/admin", response_model=TransactionReceipt)
async def set_admin(
    request: SetAdminRequest,
    ledger: ElectionLedgerService = Depends(get_ledger_service),
    caller: str = Depends(require_caller)
) -> TransactionReceipt:
    """Designate the admin identity. Owner only."""
    return await ledger.set_admin(caller, request.identity)
