from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import Settings, get_settings


bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Caller identity taken from a verified bearer token.

    ``user_id`` becomes the asset's ``created_by``; scopes gate the admin routes.
    """

    user_id: Optional[str] = None
    scopes: tuple[str, ...] = ()

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes


def issue_token(settings: Settings, *, user_id: str | None, scopes: list[str], ttl: timedelta) -> str:
    issued_at = datetime.now(timezone.utc)
    claims: dict[str, object] = {
        "scopes": scopes,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + ttl).timestamp()),
    }
    optional = {"sub": user_id, "iss": settings.jwt_issuer, "aud": settings.jwt_audience}
    claims.update({name: value for name, value in optional.items() if value})
    return jwt.encode(claims, settings.secrets.jwt_secret, algorithm=settings.jwt_algorithm)


def _verified_claims(token: str, settings: Settings) -> dict:
    try:
        return jwt.decode(
            token,
            settings.secrets.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"verify_aud": settings.jwt_audience is not None},
        )
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token") from exc


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    settings: Settings = Depends(get_settings),
) -> AuthContext:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_authorization")
    claims = _verified_claims(credentials.credentials, settings)
    subject = claims.get("sub")
    return AuthContext(user_id=str(subject) if subject else None, scopes=tuple(claims.get("scopes") or ()))


def require_scope(scope: str):
    """Dependency that rejects callers whose token lacks ``scope``."""

    async def check(context: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not context.has_scope(scope):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"{scope}_scope_required")
        return context

    return check


__all__ = ["AuthContext", "get_auth_context", "issue_token", "require_scope"]
