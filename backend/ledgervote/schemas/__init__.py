"""
Pydantic schemas for ledger request/response validation.
"""
from ledgervote.schemas.ledger import (
    AddCandidateRequest,
    RemoveCandidateRequest,
    SetVotingPeriodRequest,
    ClearVotingPeriodRequest,
    VoteRequest,
    SetAdminRequest,
    GetCandidatesRequest,
    GetCandidateCountRequest,
    GetResultsRequest,
    GetVotingPeriodRequest,
    HasVotedRequest,
    LastVotedRoundRequest,
    CurrentRoundRequest,
    LedgerClockRequest,
    GetWinnerRequest,
    GetWinnersRequest,
    GetRolesRequest,
    LedgerRequest,
    TransactionReceipt,
    CandidateList,
    CandidateCount,
    ResultsTable,
    VotingPeriodView,
    VoterStatus,
    LastVotedRoundView,
    RoundView,
    ClockView,
    WinnerView,
    WinnersView,
    RolesView,
    ErrorBody,
)

__all__ = [
    # Writes
    "AddCandidateRequest",
    "RemoveCandidateRequest",
    "SetVotingPeriodRequest",
    "ClearVotingPeriodRequest",
    "VoteRequest",
    "SetAdminRequest",
    # Reads
    "GetCandidatesRequest",
    "GetCandidateCountRequest",
    "GetResultsRequest",
    "GetVotingPeriodRequest",
    "HasVotedRequest",
    "LastVotedRoundRequest",
    "CurrentRoundRequest",
    "LedgerClockRequest",
    "GetWinnerRequest",
    "GetWinnersRequest",
    "GetRolesRequest",
    "LedgerRequest",
    # Responses
    "TransactionReceipt",
    "CandidateList",
    "CandidateCount",
    "ResultsTable",
    "VotingPeriodView",
    "VoterStatus",
    "LastVotedRoundView",
    "RoundView",
    "ClockView",
    "WinnerView",
    "WinnersView",
    "RolesView",
    "ErrorBody",
]
