"""
Vote casting and per-voter status endpoints.
"""
from fastapi import APIRouter, Depends

from ledgervote.core.security import normalize_identity
from ledgervote.services.ledger_service import ElectionLedgerService
from ledgervote.schemas.ledger import (
    VoteRequest,
    TransactionReceipt,
    VoterStatus,
    LastVotedRoundView,
)
from ledgervote.api.v1.deps import get_ledger_service, require_caller


router = APIRouter()


@router.post("/votes", response_model=TransactionReceipt)
async def cast_vote(
    request: VoteRequest,
    ledger: ElectionLedgerService = Depends(get_ledger_service),
    caller: str = Depends(require_caller)
) -> TransactionReceipt:
    """
    Cast the caller's vote for the current round.

    The ledger checks, in order:
    1. The ledger clock is inside the voting window
    2. The caller has not voted in this round
    3. The candidate is registered
    """
    return await ledger.vote(caller, request.candidate_id)


@router.get("/voters/{identity}/has-voted", response_model=VoterStatus)
async def has_voted(
    identity: str,
    ledger: ElectionLedgerService = Depends(get_ledger_service)
) -> VoterStatus:
    """Whether the identity has voted in the current round."""
    return VoterStatus(
        identity=normalize_identity(identity),
        has_voted=await ledger.has_voted(identity),
    )


@router.get("/voters/{identity}/last-voted-round", response_model=LastVotedRoundView)
async def last_voted_round(
    identity: str,
    ledger: ElectionLedgerService = Depends(get_ledger_service)
) -> LastVotedRoundView:
    """The most recent round the identity voted in (0 if never)."""
    return LastVotedRoundView(
        identity=normalize_identity(identity),
        last_voted_round=await ledger.last_voted_round(identity),
    )
