"""
API dependencies for caller identity and ledger access.
"""
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from ledgervote.core.database import get_db
from ledgervote.core.security import decode_token, normalize_identity
from ledgervote.services.ledger_service import ElectionLedgerService, LedgerSequencer


security = HTTPBearer(auto_error=False)


def get_sequencer(request: Request) -> LedgerSequencer:
    """The process-wide write sequencer created by the app factory."""
    return request.app.state.sequencer


async def get_ledger_service(
    db: AsyncSession = Depends(get_db),
    sequencer: LedgerSequencer = Depends(get_sequencer),
) -> ElectionLedgerService:
    return ElectionLedgerService(db, sequencer)


async def get_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """
    Get the caller identity from the bearer token.
    Returns None if no valid token is provided.
    """
    if not credentials:
        return None

    payload = decode_token(credentials.credentials)
    if not payload:
        return None

    identity = payload.get("sub")
    if not identity:
        return None

    return normalize_identity(identity)


async def require_caller(
    caller: Optional[str] = Depends(get_caller)
) -> str:
    """
    Require a signed caller identity.
    Raises 401 if not authenticated.
    """
    if not caller:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Signed caller identity required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return caller
