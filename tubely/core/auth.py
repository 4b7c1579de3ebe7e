from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import Settings, get_settings
from .errors import Unauthorized


security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    scopes: tuple[str, ...] = ()


def _decode_token(token: str, settings: Settings) -> dict:
    try:
        payload = jwt.decode(
            token,
            settings.secrets.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"verify_aud": settings.jwt_audience is not None},
        )
    except jwt.PyJWTError as exc:
        raise Unauthorized("invalid_token") from exc
    return payload


def issue_token(
    user_id: str,
    settings: Settings,
    *,
    scopes: list[str] | None = None,
    ttl: timedelta = timedelta(hours=1),
) -> str:
    issued_at = datetime.now(timezone.utc)
    claims: dict[str, object] = {
        "sub": user_id,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + ttl).timestamp()),
    }
    if scopes:
        claims["scopes"] = scopes
    if settings.jwt_issuer:
        claims["iss"] = settings.jwt_issuer
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience
    return jwt.encode(claims, settings.secrets.jwt_secret, algorithm=settings.jwt_algorithm)


async def get_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
) -> AuthContext:
    if not credentials:
        raise Unauthorized("missing_authorization")

    payload = _decode_token(credentials.credentials, settings)
    user_id = payload.get("sub") or payload.get("user_id")
    if not user_id:
        raise Unauthorized("subject_required")

    context = AuthContext(user_id=str(user_id), scopes=tuple(payload.get("scopes") or []))
    request.state.auth = context
    structlog.contextvars.bind_contextvars(user_id=context.user_id)
    return context


__all__ = ["AuthContext", "get_auth_context", "issue_token"]
