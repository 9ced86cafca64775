"""
Officina API Dependencies

Dependency injection for DB sessions, auth, and the caller's pharmacy scope.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.config import get_settings
from core.security import UserContext, decode_access_token
from db.session import AsyncSessionLocal
from ruptures.pipeline import SessionFactory
from ruptures.types import ReconciliationConfig

settings = get_settings()
security = HTTPBearer(auto_error=False)

DEV_USER_CLAIMS = {"sub": "dev-user", "role": "admin"}


def get_session_factory() -> SessionFactory:
    """
    Session factory rather than a session: the comparison period runs on
    its own session, concurrently with the current one.
    """
    return AsyncSessionLocal


def get_reconciliation_config() -> ReconciliationConfig:
    return ReconciliationConfig.from_settings(get_settings())


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> UserContext:
    """Decode JWT and return the caller. Bypassed (admin) in debug mode."""
    if settings.debug:
        return UserContext.from_claims(DEV_USER_CLAIMS)

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    try:
        return UserContext.from_claims(payload)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid pharmacy claim",
        ) from exc
