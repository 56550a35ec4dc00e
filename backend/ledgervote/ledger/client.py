"""
Client for the election ledger RPC surface.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type

import httpx
import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from ledgervote.core.config import settings
from ledgervote.core.errors import (
    InvalidRequest,
    LedgerError,
    LedgerUnavailable,
    Unauthorized,
    error_from_payload,
)
from ledgervote.schemas.ledger import (
    CandidateCount,
    CandidateList,
    ClearVotingPeriodRequest,
    ClockView,
    CurrentRoundRequest,
    GetCandidateCountRequest,
    GetCandidatesRequest,
    GetResultsRequest,
    GetRolesRequest,
    GetVotingPeriodRequest,
    GetWinnerRequest,
    GetWinnersRequest,
    HasVotedRequest,
    LastVotedRoundRequest,
    LastVotedRoundView,
    LedgerClockRequest,
    LedgerRequest,
    RemoveCandidateRequest,
    ResultsTable,
    RolesView,
    RoundView,
    SetAdminRequest,
    SetVotingPeriodRequest,
    TransactionReceipt,
    VoteRequest,
    VoterStatus,
    VotingPeriodView,
    WinnersView,
    WinnerView,
)
from ledgervote.services.identity import WalletSession
from ledgervote.services.retry import RetryPolicy


logger = structlog.get_logger(__name__)

_request_adapter: TypeAdapter = TypeAdapter(LedgerRequest)


@dataclass(frozen=True)
class Route:
    """How one ledger operation travels over the wire."""

    method: str
    path: str
    response_model: Type[BaseModel]

    @property
    def is_write(self) -> bool:
        return self.method == "POST"


ROUTES: Dict[str, Route] = {
    # Writes
    "add_candidate": Route("POST", "/candidates", TransactionReceipt),
    "remove_candidate": Route("POST", "/candidates/remove", TransactionReceipt),
    "set_voting_period": Route("POST", "/period", TransactionReceipt),
    "clear_voting_period": Route("POST", "/period/clear", TransactionReceipt),
    "vote": Route("POST", "/votes", TransactionReceipt),
    "set_admin": Route("POST", "/admin", TransactionReceipt),
    # Reads
    "get_candidates": Route("GET", "/candidates", CandidateList),
    "get_candidate_count": Route("GET", "/candidates/count", CandidateCount),
    "get_results": Route("GET", "/results", ResultsTable),
    "get_voting_period": Route("GET", "/period", VotingPeriodView),
    "has_voted": Route("GET", "/voters/{identity}/has-voted", VoterStatus),
    "last_voted_round": Route("GET", "/voters/{identity}/last-voted-round", LastVotedRoundView),
    "current_round": Route("GET", "/round", RoundView),
    "ledger_clock_now": Route("GET", "/clock", ClockView),
    "get_winner": Route("GET", "/winner", WinnerView),
    "get_winners": Route("GET", "/winners", WinnersView),
    "get_roles": Route("GET", "/roles", RolesView),
}


class LedgerClient:
    """
    Typed handle to the election ledger.

    Construct one per process and pass it to every component. This client
    handles:
    - Transaction submission and confirmation (writes, never auto-retried)
    - Queries (reads, retried on transport failures)
    - Decoding ledger error bodies into the error taxonomy
    """

    def __init__(
        self,
        session: Optional[WalletSession] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        read_retry: Optional[RetryPolicy] = None,
    ):
        self.session = session
        self.base_url = (base_url or settings.LEDGER_URL).rstrip("/")
        self.api_prefix = f"{settings.API_V1_PREFIX}/ledger"
        self.timeout = timeout if timeout is not None else settings.LEDGER_TIMEOUT_SECONDS
        self.read_retry = read_retry or RetryPolicy(
            max_attempts=settings.LEDGER_RETRY_ATTEMPTS,
            interval=settings.LEDGER_RETRY_INTERVAL_SECONDS,
        )
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        """Open the underlying HTTP connection pool."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )

    async def disconnect(self) -> None:
        """Close the HTTP connection pool."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "LedgerClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.disconnect()

    # ---------- Transport ----------

    def _headers(self, route: Route) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self.session.authorization_token() if self.session else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        elif route.is_write:
            raise Unauthorized("No connected identity to sign the transaction")
        return headers

    async def _send(self, request: BaseModel) -> BaseModel:
        route = ROUTES[request.op]
        await self.connect()

        fields = request.model_dump()
        url = self.api_prefix + route.path.format(**fields)
        headers = self._headers(route)

        try:
            if route.is_write:
                response = await self._http.post(url, json=fields, headers=headers)
            else:
                response = await self._http.get(url, headers=headers)
        except httpx.TimeoutException as e:
            raise LedgerUnavailable(f"Ledger timed out on {request.op}: {e}") from e
        except httpx.TransportError as e:
            raise LedgerUnavailable(f"Ledger unreachable on {request.op}: {e}") from e

        if response.status_code >= 400:
            raise self._decode_error(request.op, response)

        try:
            return route.response_model.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            raise LedgerUnavailable(f"Malformed ledger response for {request.op}") from e

    @staticmethod
    def _decode_error(op: str, response: httpx.Response) -> LedgerError:
        try:
            body: Any = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and isinstance(body.get("error"), str):
            return error_from_payload(body["error"], body.get("detail"))
        if response.status_code == 401:
            return Unauthorized("Signed caller identity required")
        if response.status_code in (400, 422):
            detail = body.get("detail") if isinstance(body, dict) else response.text
            return InvalidRequest(f"Ledger rejected {op}: {detail}")
        return LedgerUnavailable(f"Ledger returned HTTP {response.status_code} for {op}")

    async def execute(self, request: Any, retry: bool = True) -> BaseModel:
        """
        Run one typed ledger operation.

        ``request`` may be a request model or a plain dict carrying an
        ``op`` tag; either way it is validated before leaving the client.
        Reads go through ``read_retry`` unless ``retry`` is False.

        Raises:
            InvalidRequest: the request failed validation
        """
        if not isinstance(request, BaseModel):
            try:
                request = _request_adapter.validate_python(request)
            except ValidationError as e:
                raise InvalidRequest(f"Invalid ledger request: {e}") from e

        route = ROUTES[request.op]
        if route.is_write:
            logger.debug("ledger_submit", op=request.op)
            receipt = await self._send(request)
            logger.info(
                "ledger_confirmed",
                op=request.op,
                confirmation_id=receipt.confirmation_id,
                block=receipt.block_number,
            )
            return receipt
        if not retry:
            return await self._send(request)
        return await self.read_retry.call(self._send, request)

    # ---------- Writes ----------

    async def add_candidate(self, name: str) -> TransactionReceipt:
        return await self.execute({"op": "add_candidate", "name": name})

    async def remove_candidate(self, candidate_id: int) -> TransactionReceipt:
        return await self.execute(RemoveCandidateRequest(candidate_id=candidate_id))

    async def set_voting_period(self, start_time: int, end_time: int) -> TransactionReceipt:
        return await self.execute(
            SetVotingPeriodRequest(start_time=start_time, end_time=end_time)
        )

    async def clear_voting_period(self) -> TransactionReceipt:
        return await self.execute(ClearVotingPeriodRequest())

    async def vote(self, candidate_id: int) -> TransactionReceipt:
        return await self.execute(VoteRequest(candidate_id=candidate_id))

    async def set_admin(self, identity: str) -> TransactionReceipt:
        return await self.execute(SetAdminRequest(identity=identity))

    # ---------- Reads ----------

    async def get_candidates(self) -> CandidateList:
        return await self.execute(GetCandidatesRequest())

    async def get_candidate_count(self) -> int:
        result = await self.execute(GetCandidateCountRequest())
        return result.count

    async def get_results(self) -> ResultsTable:
        return await self.execute(GetResultsRequest())

    async def get_voting_period(self) -> VotingPeriodView:
        return await self.execute(GetVotingPeriodRequest())

    async def is_voting_period_active(self) -> bool:
        """Activity as computed by the ledger host on its own clock."""
        period = await self.get_voting_period()
        return period.active

    async def has_voted(self, identity: str) -> bool:
        result = await self.execute(HasVotedRequest(identity=identity))
        return result.has_voted

    async def last_voted_round(self, identity: str) -> int:
        result = await self.execute(LastVotedRoundRequest(identity=identity))
        return result.last_voted_round

    async def current_round(self) -> int:
        result = await self.execute(CurrentRoundRequest())
        return result.current_round

    async def ledger_clock_now(self, retry: bool = True) -> ClockView:
        return await self.execute(LedgerClockRequest(), retry=retry)

    async def get_winner(self) -> str:
        result = await self.execute(GetWinnerRequest())
        return result.winner

    async def get_winners(self) -> WinnersView:
        return await self.execute(GetWinnersRequest())

    async def get_roles(self) -> RolesView:
        return await self.execute(GetRolesRequest())

    async def owner(self) -> str:
        roles = await self.get_roles()
        return roles.owner

    async def admin(self) -> Optional[str]:
        roles = await self.get_roles()
        return roles.admin
