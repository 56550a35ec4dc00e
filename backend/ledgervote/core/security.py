"""
Caller identity tokens for ledger RPC.

A caller proves its identity by presenting a bearer JWT whose ``sub``
claim is the identity handle. The ledger host trusts the ``sub`` of any
token signed with its key.
"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
import hashlib

from jose import jwt, JWTError

from ledgervote.core.config import settings


def normalize_identity(identity: str) -> str:
    """Identities compare case-insensitively (hex addresses)."""
    return identity.strip().lower()


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({
        "exp": expire,
        "iat": datetime.utcnow(),
        "type": "access"
    })

    encoded_jwt = jwt.encode(
        to_encode,
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM
    )
    return encoded_jwt


def create_identity_token(identity: str, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a token asserting ``identity`` as the caller."""
    return create_access_token({"sub": normalize_identity(identity)}, expires_delta)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode and verify a JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
        return payload
    except JWTError:
        return None


def generate_confirmation_id(op: str, args: list, block_number: int) -> str:
    """Deterministic transaction id for an accepted ledger write."""
    data = f"{op}:{':'.join(str(a) for a in args)}:{block_number}"
    return "0x" + hashlib.sha256(data.encode()).hexdigest()
