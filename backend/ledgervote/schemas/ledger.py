"""
Typed request/response variants for every ledger operation.

Each request carries an ``op`` tag so the full set forms a closed,
discriminated union (``LedgerRequest``). Responses are validated at the
client boundary before any component sees them.
"""
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


# ---------- Write requests ----------

class AddCandidateRequest(BaseModel):
    """Register a new candidate."""

    model_config = ConfigDict(str_strip_whitespace=True)

    op: Literal["add_candidate"] = "add_candidate"
    name: str = Field(..., min_length=1, max_length=200, description="Candidate name")


class RemoveCandidateRequest(BaseModel):
    """Remove a candidate without reusing its id."""

    op: Literal["remove_candidate"] = "remove_candidate"
    candidate_id: int = Field(..., ge=0, description="Candidate id")


class SetVotingPeriodRequest(BaseModel):
    """
    Overwrite the voting period and open a new round.
    ``end <= start`` is rejected by the ledger with InvalidWindow,
    so no ordering validator is applied here.
    """

    op: Literal["set_voting_period"] = "set_voting_period"
    start_time: int = Field(..., ge=0, description="Start, unix seconds")
    end_time: int = Field(..., ge=0, description="End, unix seconds (exclusive)")


class ClearVotingPeriodRequest(BaseModel):
    op: Literal["clear_voting_period"] = "clear_voting_period"


class VoteRequest(BaseModel):
    """Cast the caller's vote for the current round."""

    op: Literal["vote"] = "vote"
    candidate_id: int = Field(..., ge=0, description="Candidate id")


class SetAdminRequest(BaseModel):
    """Owner-only: designate the admin identity."""

    op: Literal["set_admin"] = "set_admin"
    identity: str = Field(..., min_length=1, max_length=128, description="Admin identity")


# ---------- Read requests ----------

class GetCandidatesRequest(BaseModel):
    op: Literal["get_candidates"] = "get_candidates"


class GetCandidateCountRequest(BaseModel):
    op: Literal["get_candidate_count"] = "get_candidate_count"


class GetResultsRequest(BaseModel):
    op: Literal["get_results"] = "get_results"


class GetVotingPeriodRequest(BaseModel):
    op: Literal["get_voting_period"] = "get_voting_period"


class HasVotedRequest(BaseModel):
    op: Literal["has_voted"] = "has_voted"
    identity: str = Field(..., min_length=1, max_length=128)


class LastVotedRoundRequest(BaseModel):
    op: Literal["last_voted_round"] = "last_voted_round"
    identity: str = Field(..., min_length=1, max_length=128)


class CurrentRoundRequest(BaseModel):
    op: Literal["current_round"] = "current_round"


class LedgerClockRequest(BaseModel):
    op: Literal["ledger_clock_now"] = "ledger_clock_now"


class GetWinnerRequest(BaseModel):
    op: Literal["get_winner"] = "get_winner"


class GetWinnersRequest(BaseModel):
    op: Literal["get_winners"] = "get_winners"


class GetRolesRequest(BaseModel):
    op: Literal["get_roles"] = "get_roles"


LedgerRequest = Annotated[
    Union[
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
    ],
    Field(discriminator="op"),
]


# ---------- Responses ----------

class TransactionReceipt(BaseModel):
    """Durable acknowledgment of an accepted write."""

    confirmation_id: str = Field(..., description="Opaque transaction id")
    block_number: int = Field(..., ge=0, description="Ledger sequence number")
    timestamp: int = Field(..., description="Ledger clock at acceptance, unix seconds")


class CandidateList(BaseModel):
    ids: List[int] = Field(default_factory=list)
    names: List[str] = Field(default_factory=list)


class CandidateCount(BaseModel):
    count: int = Field(..., ge=0)


class ResultsTable(BaseModel):
    """Per-candidate vote counts for the current round."""

    round: int = Field(..., ge=0)
    ids: List[int] = Field(default_factory=list)
    names: List[str] = Field(default_factory=list)
    counts: List[int] = Field(default_factory=list)


class VotingPeriodView(BaseModel):
    """Voting period with ``active`` computed from the ledger clock."""

    start_time: int = Field(..., ge=0)
    end_time: int = Field(..., ge=0)
    active: bool = False


class VoterStatus(BaseModel):
    identity: str
    has_voted: bool = False


class LastVotedRoundView(BaseModel):
    identity: str
    last_voted_round: int = Field(0, ge=0, description="0 when never voted")


class RoundView(BaseModel):
    current_round: int = Field(..., ge=0)


class ClockView(BaseModel):
    now: int = Field(..., description="Ledger clock, unix seconds")
    block_number: int = Field(..., ge=0)


class WinnerView(BaseModel):
    winner: str = Field(..., description="Winner name, 'No candidates' or 'No winner'")


class WinnersView(BaseModel):
    names: List[str] = Field(default_factory=list)
    ids: List[int] = Field(default_factory=list)
    max_votes: int = Field(0, ge=0)


class RolesView(BaseModel):
    owner: str
    admin: Optional[str] = None


class ErrorBody(BaseModel):
    error: str = Field(..., description="Error kind")
    detail: str = Field(..., description="Human-readable detail")
