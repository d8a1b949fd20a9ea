"""
Bearer token decoding.

Tokens are issued by the external auth service; this module only verifies
them and exposes the caller as a Principal. `create_access_token` exists for
tooling and tests that need to mint a token with the shared secret.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from parkpass.core.config import get_settings

_bearer = HTTPBearer(auto_error=False)


class Role(str, Enum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    VISITOR = "VISITOR"


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def can_scan(self) -> bool:
        return self.role in (Role.ADMIN, Role.STAFF)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    settings = get_settings()
    payload = dict(data)
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload["exp"] = expire
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Principal:
    settings = get_settings()
    credentials_error = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id = int(payload["sub"])
        role = Role(payload.get("role", Role.VISITOR.value))
    except (jwt.PyJWTError, KeyError, ValueError):
        raise credentials_error
    return Principal(user_id=user_id, role=role)


async def get_optional_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[Principal]:
    """Caller if a bearer token was sent, otherwise None (guest checkout)."""
    if credentials is None:
        return None
    return decode_access_token(credentials.credentials)


async def get_current_principal(
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> Principal:
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


async def get_gate_principal(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    if not principal.can_scan:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Gate staff only",
        )
    return principal
