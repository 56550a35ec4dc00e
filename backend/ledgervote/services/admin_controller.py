"""
Admin Controller: fail-fast local checks in front of ledger admin writes.

The local checks only save round-trips. The ledger repeats every check
and its answer is final. Ledger rejections are terminal and never retried.
"""
from typing import Iterable, Optional

import structlog

from ledgervote.core.config import settings
from ledgervote.core.errors import ClockUnresolved, InvalidWindow, PeriodActive, Unauthorized
from ledgervote.core.security import normalize_identity
from ledgervote.ledger.client import LedgerClient
from ledgervote.schemas.ledger import TransactionReceipt
from ledgervote.services.clock import ClockReconciler


logger = structlog.get_logger(__name__)


class AdminController:
    """Service for candidate and voting period administration."""

    def __init__(
        self,
        ledger: LedgerClient,
        clock: ClockReconciler,
        admin_addresses: Optional[Iterable[str]] = None,
        admin_override: Optional[bool] = None,
    ):
        self.ledger = ledger
        self.clock = clock
        addresses = settings.ADMIN_ADDRESSES if admin_addresses is None else admin_addresses
        self.admin_addresses = {normalize_identity(a) for a in addresses if a.strip()}
        self.admin_override = (
            settings.ADMIN_OVERRIDE if admin_override is None else admin_override
        )

    def _caller(self) -> str:
        identity = self.ledger.session.current_identity() if self.ledger.session else None
        if not identity:
            raise Unauthorized("Please connect a wallet before administering the election")
        return normalize_identity(identity)

    async def is_owner(self, identity: Optional[str] = None) -> bool:
        identity = normalize_identity(identity) if identity else self._caller()
        return await self.ledger.owner() == identity

    async def is_authorized(self, identity: Optional[str] = None) -> bool:
        """
        Owner, ledger admin, a locally allow-listed identity, or any
        identity when the override is on.
        """
        identity = normalize_identity(identity) if identity else self._caller()
        if self.admin_override or identity in self.admin_addresses:
            return True
        roles = await self.ledger.get_roles()
        return identity in (roles.owner, roles.admin)

    async def _precheck(self, guard_period: bool = True) -> str:
        caller = self._caller()
        if not await self.is_authorized(caller):
            raise Unauthorized(f"{caller} is neither owner nor admin")

        if guard_period:
            period = await self.ledger.get_voting_period()
            try:
                active = await self.clock.confirm_active(period)
            except ClockUnresolved:
                # advisory only; the ledger will decide
                logger.warning("admin_precheck_clock_unresolved", caller=caller)
                active = False
            if active:
                raise PeriodActive(
                    f"Voting period [{period.start_time}, {period.end_time}) is active"
                )
        return caller

    def _confirmed(self, action: str, caller: str, receipt: TransactionReceipt) -> TransactionReceipt:
        logger.info(
            "admin_write_confirmed",
            action=action,
            caller=caller,
            confirmation_id=receipt.confirmation_id,
            block=receipt.block_number,
        )
        return receipt

    async def add_candidate(self, name: str) -> TransactionReceipt:
        caller = await self._precheck()
        receipt = await self.ledger.add_candidate(name.strip())
        return self._confirmed("add_candidate", caller, receipt)

    async def remove_candidate(self, candidate_id: int) -> TransactionReceipt:
        caller = await self._precheck()
        receipt = await self.ledger.remove_candidate(candidate_id)
        return self._confirmed("remove_candidate", caller, receipt)

    async def set_voting_period(self, start_time: int, end_time: int) -> TransactionReceipt:
        """Submit the window exactly as given."""
        if end_time <= start_time:
            raise InvalidWindow(f"End time {end_time} must be after start time {start_time}")
        caller = await self._precheck()
        receipt = await self.ledger.set_voting_period(start_time, end_time)
        return self._confirmed("set_voting_period", caller, receipt)

    async def schedule_voting_period(
        self,
        start_time: int,
        end_time: int,
        min_start_lead: Optional[int] = None,
        min_duration: Optional[int] = None,
    ) -> TransactionReceipt:
        """
        Align a requested window with the ledger clock, then submit it.

        The start is pushed to at least ``ledger_now + min_start_lead`` and
        the end to at least ``start + min_duration``.
        """
        if end_time <= start_time:
            raise InvalidWindow(f"End time {end_time} must be after start time {start_time}")

        lead = settings.MIN_START_LEAD_SECONDS if min_start_lead is None else min_start_lead
        duration = settings.MIN_PERIOD_SECONDS if min_duration is None else min_duration

        ledger_now = await self.clock.ledger_now()
        start = max(start_time, ledger_now + lead)
        end = max(end_time, start + duration)
        if (start, end) != (start_time, end_time):
            logger.info(
                "voting_period_aligned",
                requested=[start_time, end_time],
                aligned=[start, end],
                ledger_now=ledger_now,
            )
        return await self.set_voting_period(start, end)

    async def clear_voting_period(self) -> TransactionReceipt:
        caller = await self._precheck(guard_period=False)
        receipt = await self.ledger.clear_voting_period()
        return self._confirmed("clear_voting_period", caller, receipt)

    async def set_admin(self, identity: str) -> TransactionReceipt:
        """Owner only."""
        caller = self._caller()
        if not await self.is_owner(caller):
            raise Unauthorized(f"{caller} is not the owner")
        receipt = await self.ledger.set_admin(identity)
        return self._confirmed("set_admin", caller, receipt)
