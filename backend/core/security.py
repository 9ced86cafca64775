"""
Officina Security Utilities

JWT handling and the pharmacy scope a caller is allowed to see.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from jose import JWTError, jwt

from core.config import get_settings

ADMIN_ROLE = "admin"


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token."""
    runtime_settings = get_settings()
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(hours=24))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, runtime_settings.jwt_secret, algorithm=runtime_settings.jwt_algorithm)


def decode_access_token(token: str) -> dict | None:
    """Decode and validate a local JWT. Returns None when invalid or expired."""
    runtime_settings = get_settings()
    try:
        return jwt.decode(
            token,
            runtime_settings.jwt_secret,
            algorithms=[runtime_settings.jwt_algorithm],
        )
    except JWTError:
        return None


# ── Pharmacy scope ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class UserContext:
    user_id: str
    role: str
    pharmacy_id: uuid.UUID | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @classmethod
    def from_claims(cls, claims: dict) -> "UserContext":
        raw_pharmacy = claims.get("pharmacy_id")
        return cls(
            user_id=str(claims.get("sub", "")),
            role=str(claims.get("role", "")),
            pharmacy_id=uuid.UUID(str(raw_pharmacy)) if raw_pharmacy else None,
        )


def resolve_pharmacy_scope(
    user: UserContext,
    requested: list[uuid.UUID] | None,
) -> frozenset[uuid.UUID] | None:
    """
    Intersect the caller's pharmacy filter with what the user may see.

    Admins see the whole chain: their filter applies as given and an empty
    filter means every pharmacy (None). Restricted users only ever see their
    own pharmacy; asking for other pharmacies yields an empty scope.
    """
    if user.is_admin:
        return frozenset(requested) if requested else None

    if user.pharmacy_id is None:
        raise PermissionError("Restricted user has no pharmacy assigned")

    own = frozenset({user.pharmacy_id})
    if not requested:
        return own
    return own & frozenset(requested)
