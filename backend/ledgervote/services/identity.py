"""
Collaborator interfaces for voter identity.

The biometric matcher and the wallet/session layer live outside this
package; only the shapes below are consumed.
"""
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Protocol, Union

import structlog

from ledgervote.core.security import create_identity_token, normalize_identity


logger = structlog.get_logger(__name__)


class NotRecognized(Exception):
    """The biometric collaborator could not match the participant."""


class SessionEventKind(str, Enum):
    IDENTITY_CHANGED = "identity_changed"
    NETWORK_CHANGED = "network_changed"


@dataclass(frozen=True)
class SessionEvent:
    """Identity or network change signaled by the execution environment."""

    kind: SessionEventKind
    identity: Optional[str] = None


SessionListener = Callable[[SessionEvent], Union[None, Awaitable[None]]]


class IdentityResolver(Protocol):
    """Biometric capture-and-match, treated as an opaque function."""

    async def resolve_identity(self) -> str:
        """Return a stable participant identifier or raise NotRecognized."""
        ...


class WalletSession(Protocol):
    """Wallet/session connection plumbing."""

    def current_identity(self) -> Optional[str]:
        ...

    def authorization_token(self) -> Optional[str]:
        """Bearer token that signs ledger writes as the current identity."""
        ...

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register for change events; returns an unsubscribe callable."""
        ...


class LocalWalletSession:
    """
    In-process wallet session.

    Signs with the ledger host's token key, so it is only suitable for
    development tools and tests where the client and host share settings.
    """

    def __init__(self, identity: Optional[str] = None):
        self._identity = normalize_identity(identity) if identity else None
        self._listeners: List[SessionListener] = []

    def current_identity(self) -> Optional[str]:
        return self._identity

    def authorization_token(self) -> Optional[str]:
        if not self._identity:
            return None
        return create_identity_token(self._identity)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _emit(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            result = listener(event)
            if inspect.isawaitable(result):
                await result

    async def switch_identity(self, identity: Optional[str]) -> None:
        """Change the connected identity and notify subscribers."""
        self._identity = normalize_identity(identity) if identity else None
        logger.info("session_identity_changed", identity=self._identity)
        await self._emit(SessionEvent(SessionEventKind.IDENTITY_CHANGED, self._identity))

    async def switch_network(self) -> None:
        logger.info("session_network_changed")
        await self._emit(SessionEvent(SessionEventKind.NETWORK_CHANGED, self._identity))
