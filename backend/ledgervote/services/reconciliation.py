"""
Client Reconciliation Layer.

Polls the ledger on a fixed interval and on identity/network change
events, and publishes a consistent ``VoterView`` snapshot to subscribers.
Per-voter fields are always re-derived from the ledger for the identity
that is connected now; they never carry over from a previous identity.
"""
import asyncio
import inspect
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple, Union

import structlog
from pydantic import BaseModel, ValidationError

from ledgervote.core.config import settings
from ledgervote.core.errors import ClockUnresolved, LedgerError, LedgerUnavailable, Unauthorized
from ledgervote.core.security import normalize_identity
from ledgervote.ledger.client import LedgerClient
from ledgervote.schemas.ledger import VotingPeriodView
from ledgervote.services.ballot_caster import BallotCaster, BallotResult
from ledgervote.services.clock import ClockReconciler
from ledgervote.services.identity import IdentityResolver, SessionEvent, SessionEventKind
from ledgervote.services.results_resolver import ResultsResolver
from ledgervote.services.retry import Sleep
from ledgervote.services.tally import ElectionOutcome


logger = structlog.get_logger(__name__)


class SessionState(BaseModel):
    """Local, non-authoritative session memory."""

    last_identity: Optional[str] = None
    saved_at: Optional[datetime] = None


class SessionStore:
    """
    Persists the last known identity as JSON.

    Only used to skip a redundant re-authentication prompt; never consulted
    for vote eligibility. Without a path the state lives in memory.
    """

    def __init__(self, path: Optional[str] = None):
        path = path if path is not None else settings.SESSION_STATE_PATH
        self.path = Path(path) if path else None
        self._state = SessionState()

    def load(self) -> SessionState:
        if self.path is None or not self.path.exists():
            return self._state
        try:
            self._state = SessionState.model_validate_json(self.path.read_text())
        except ValidationError as e:
            logger.warning("session_state_unreadable", path=str(self.path), error=str(e))
            self._state = SessionState()
        return self._state

    def save(self, identity: str) -> None:
        self._state = SessionState(
            last_identity=normalize_identity(identity),
            saved_at=datetime.now(timezone.utc),
        )
        self._write()

    def clear(self) -> None:
        self._state = SessionState()
        self._write()

    def _write(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self._state.model_dump_json())


@dataclass(frozen=True)
class VoterView:
    """Snapshot of everything the UI shows for the connected voter."""

    identity: Optional[str] = None
    candidate_ids: List[int] = field(default_factory=list)
    candidate_names: List[str] = field(default_factory=list)
    period: Optional[VotingPeriodView] = None
    active: bool = False
    current_round: int = 0
    # None until derived from the ledger for ``identity``
    has_voted: Optional[bool] = None
    last_voted_round: Optional[int] = None
    outcome: Optional[ElectionOutcome] = None
    time_remaining: str = ""
    retrying: bool = False
    error: Optional[str] = None

    @property
    def voter_ready(self) -> bool:
        return self.identity is not None and self.has_voted is not None

    @property
    def can_vote(self) -> bool:
        return self.voter_ready and self.active and not self.has_voted


ViewListener = Callable[[VoterView], Union[None, Awaitable[None]]]


class ClientReconciliationLayer:
    """Keeps a voter's view of the election in step with the ledger."""

    def __init__(
        self,
        ledger: LedgerClient,
        clock: ClockReconciler,
        resolver: ResultsResolver,
        caster: BallotCaster,
        store: Optional[SessionStore] = None,
        interval: Optional[float] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.ledger = ledger
        self.session = ledger.session
        self.clock = clock
        self.resolver = resolver
        self.caster = caster
        self.store = store or SessionStore()
        self.interval = interval if interval is not None else settings.POLL_INTERVAL_SECONDS
        self.sleep = sleep or asyncio.sleep

        self.view = VoterView()
        self._listeners: List[ViewListener] = []
        # bumped on identity/network change; stale reads are discarded
        self._generation = 0
        # (round, end_time) the resolved outcome belongs to
        self._outcome_key: Optional[Tuple[int, int]] = None
        self._outcome: Optional[ElectionOutcome] = None
        self._task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ---------- Subscribers ----------

    def subscribe(self, listener: ViewListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _publish(self, view: VoterView) -> VoterView:
        self.view = view
        for listener in list(self._listeners):
            try:
                result = listener(view)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("view_listener_failed", listener=repr(listener))
        return view

    def _current_identity(self) -> Optional[str]:
        identity = self.session.current_identity() if self.session else None
        return normalize_identity(identity) if identity else None

    # ---------- Polling ----------

    async def start(self) -> None:
        """Subscribe to session events and start the poll loop."""
        if self._task is not None:
            return
        if self.session is not None:
            self._unsubscribe = self.session.subscribe(self.on_session_event)
        self._task = asyncio.create_task(self._run())
        logger.info("reconciliation_started", interval=self.interval)

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.info("reconciliation_stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.refresh()
            except LedgerError as e:
                logger.error("refresh_failed", kind=e.kind, detail=e.detail)
            except Exception:
                logger.exception("refresh_failed")
            await self.sleep(self.interval)

    async def refresh(self) -> VoterView:
        """
        Read candidates, period, round and voter status, then publish.

        Transient failures publish the previous view marked as retrying.
        """
        generation = self._generation
        identity = self._current_identity()

        try:
            candidates, period, current_round = await asyncio.gather(
                self.ledger.get_candidates(),
                self.ledger.get_voting_period(),
                self.ledger.current_round(),
            )
            has_voted: Optional[bool] = None
            last_voted_round: Optional[int] = None
            if identity:
                has_voted, last_voted_round = await asyncio.gather(
                    self.ledger.has_voted(identity),
                    self.ledger.last_voted_round(identity),
                )
            outcome = await self._outcome_for(current_round, period)
        except (LedgerUnavailable, ClockUnresolved) as e:
            logger.warning("refresh_retrying", kind=e.kind, detail=e.detail)
            return await self._publish(replace(self.view, retrying=True, error=e.user_message))

        if generation != self._generation:
            # the identity or network changed mid-read; a newer refresh owns the view
            logger.debug("refresh_discarded", identity=identity)
            return self.view

        active = bool(self.clock.active)
        view = VoterView(
            identity=identity,
            candidate_ids=list(candidates.ids),
            candidate_names=list(candidates.names),
            period=period,
            active=active,
            current_round=current_round,
            has_voted=has_voted,
            last_voted_round=last_voted_round,
            outcome=outcome,
            time_remaining=self.clock.time_remaining(period) if active else "",
        )
        return await self._publish(view)

    async def _outcome_for(
        self,
        current_round: int,
        period: VotingPeriodView,
    ) -> Optional[ElectionOutcome]:
        key = (current_round, period.end_time)
        if key != self._outcome_key:
            self._outcome_key = None

        transition = self.clock.observe(period)
        if self._outcome_key is not None:
            return self._outcome

        locally_ended = (transition is not None and transition.ended) or (
            self.clock.active is False
            and period.end_time > 0
            and self.clock.estimated_ledger_now() >= period.end_time
        )
        if not locally_ended:
            return None

        # the local clock is not enough to declare the period over
        outcome = await self.resolver.resolve_if_ended(period)
        if outcome is not None:
            self._outcome_key, self._outcome = key, outcome
        return outcome

    # ---------- Session events ----------

    async def on_session_event(self, event: SessionEvent) -> None:
        self._generation += 1

        if event.kind == SessionEventKind.IDENTITY_CHANGED:
            previous = self.view.identity
            if previous:
                self.caster.reset(previous)
            if event.identity:
                self.store.save(event.identity)
            else:
                self.store.clear()
            logger.info("identity_changed", previous=previous, identity=event.identity)
            await self._publish(replace(
                self.view,
                identity=normalize_identity(event.identity) if event.identity else None,
                has_voted=None,
                last_voted_round=None,
            ))
        elif event.kind == SessionEventKind.NETWORK_CHANGED:
            logger.info("network_changed")
            self.clock.reset()
            self.caster.reset()
            self._outcome_key = None
            await self._publish(VoterView(identity=self._current_identity()))

        await self.refresh()

    async def ensure_authenticated(self, resolver: IdentityResolver) -> str:
        """
        Return the voter identity, prompting the biometric collaborator
        only when the connected identity differs from the last known one.

        Raises:
            NotRecognized: the collaborator could not match the participant
        """
        current = self._current_identity()
        state = self.store.load()
        if current and state.last_identity == current:
            logger.debug("authentication_skipped", identity=current)
            return current

        identity = normalize_identity(await resolver.resolve_identity())
        self.store.save(identity)
        logger.info("authenticated", identity=identity)
        return identity

    # ---------- Voting ----------

    async def cast_vote(self, candidate_id: int) -> BallotResult:
        """
        Vote as the connected identity once its status is known.

        Raises:
            LedgerUnavailable: the voter's status could not be re-derived
        """
        identity = self._current_identity()
        if identity is None:
            raise Unauthorized("Please connect your wallet to vote")
        if self.view.identity != identity or not self.view.voter_ready:
            await self.refresh()
        if self.view.identity != identity or not self.view.voter_ready:
            raise LedgerUnavailable("Voter status could not be confirmed with the ledger")

        result = await self.caster.cast(candidate_id)
        await self.refresh()
        return result
