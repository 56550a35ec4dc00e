"""
Clock reconciliation between the local wall clock and the ledger clock.

The local clock is cheap and used for display. Any decision that gates a
write, or declares the period over, is confirmed against the ledger clock.
"""
import time
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from ledgervote.core.config import settings
from ledgervote.core.errors import ClockUnresolved, LedgerUnavailable
from ledgervote.ledger.client import LedgerClient
from ledgervote.schemas.ledger import VotingPeriodView
from ledgervote.services.retry import RetryPolicy, Sleep


logger = structlog.get_logger(__name__)


def local_clock() -> int:
    return int(time.time())


def period_active_at(period: VotingPeriodView, now: int) -> bool:
    """``now`` in ``[start_time, end_time)``; a cleared period has end 0."""
    if period.end_time <= 0:
        return False
    return period.start_time <= now < period.end_time


def period_ended_at(period: VotingPeriodView, now: int) -> bool:
    return period.end_time > 0 and now >= period.end_time


def format_time_remaining(seconds: int) -> str:
    """Countdown text: '1d 2h 3m 4s', '2h 3m 4s', '3m 4s' or '4s'."""
    if seconds <= 0:
        return "Voting has ended"

    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)

    if days > 0:
        return f"{days}d {hours}h {minutes}m {secs}s"
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


@dataclass(frozen=True)
class PeriodTransition:
    """The voting period flipped between active and inactive."""

    active: bool
    observed_at: int
    period: VotingPeriodView

    @property
    def ended(self) -> bool:
        return not self.active and period_ended_at(self.period, self.observed_at)


class ClockReconciler:
    """Resolves "now" for gating decisions and detects boundary crossings."""

    def __init__(
        self,
        ledger: LedgerClient,
        clock: Optional[Callable[[], int]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.ledger = ledger
        self.clock = clock or local_clock
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=settings.CLOCK_RETRY_ATTEMPTS,
            interval=settings.CLOCK_RETRY_INTERVAL_SECONDS,
        )
        self.sleep = sleep
        # ledger time minus local time at the last ledger reading
        self.skew: Optional[int] = None
        self._last_active: Optional[bool] = None

    def local_now(self) -> int:
        return int(self.clock())

    def estimated_ledger_now(self) -> int:
        """Local time corrected by the last observed skew."""
        return self.local_now() + (self.skew or 0)

    async def ledger_now(self) -> int:
        """
        Authoritative ledger time.

        Raises:
            ClockUnresolved: the ledger clock could not be read within the
                retry budget
        """
        async def read() -> int:
            try:
                view = await self.ledger.ledger_clock_now(retry=False)
            except LedgerUnavailable as e:
                raise ClockUnresolved(str(e)) from e
            return view.now

        ledger_time = await self.retry_policy.call(read, sleep=self.sleep)
        skew = ledger_time - self.local_now()
        if skew != self.skew:
            logger.debug("clock_skew_updated", skew=skew, previous=self.skew)
        self.skew = skew
        return ledger_time

    def is_active_locally(self, period: VotingPeriodView) -> bool:
        """Display-only activity check on the local clock."""
        return period_active_at(period, self.local_now())

    async def confirm_active(self, period: VotingPeriodView) -> bool:
        """Activity check on the ledger clock."""
        return period_active_at(period, await self.ledger_now())

    async def confirm_ended(self, period: VotingPeriodView) -> bool:
        """Whether the ledger clock has reached the end of the period."""
        return period_ended_at(period, await self.ledger_now())

    @property
    def active(self) -> Optional[bool]:
        """Activity as of the last observation, None before the first."""
        return self._last_active

    def observe(self, period: VotingPeriodView) -> Optional[PeriodTransition]:
        """
        Recompute ``active`` from the freshest clock available.

        Returns a transition only when the value flips relative to the
        previous observation, so each crossing is reported exactly once.
        The first observation establishes the baseline.
        """
        now = self.estimated_ledger_now()
        active = period_active_at(period, now)
        previous = self._last_active
        self._last_active = active

        if previous is None or previous == active:
            return None

        logger.info(
            "period_transition",
            active=active,
            observed_at=now,
            start_time=period.start_time,
            end_time=period.end_time,
        )
        return PeriodTransition(active=active, observed_at=now, period=period)

    def time_remaining(self, period: VotingPeriodView) -> str:
        if period.end_time <= 0:
            return ""
        return format_time_remaining(period.end_time - self.local_now())

    def reset(self) -> None:
        """Forget the baseline and skew, e.g. after a network change."""
        self._last_active = None
        self.skew = None
