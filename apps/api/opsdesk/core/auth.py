from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import HTTPException, status
from jose import JWTError, jwt
from starlette.requests import Request

from opsdesk.core.config import get_settings
from opsdesk.core.context import current_request_context

UNAUTHORIZED_DETAIL = "Unauthorized."


@dataclass
class AuthUser:
    sub: str
    name: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)


def _extract_bearer_token(request: Request) -> str:
    header = request.headers.get("authorization", "")
    parts = header.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        return ""
    return parts[1]


def decode_access_token(token: str) -> AuthUser:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHORIZED_DETAIL) from exc

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHORIZED_DETAIL)
    name = payload.get("name")
    return AuthUser(sub=subject.strip(), name=name if isinstance(name, str) else None, claims=payload)


def issue_access_token(sub: str, *, name: str | None = None, expires_in: timedelta | None = None) -> str:
    settings = get_settings()
    claims: dict[str, Any] = {"sub": sub}
    if name:
        claims["name"] = name
    if expires_in is not None:
        claims["exp"] = datetime.now(timezone.utc) + expires_in
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def authenticate_request(request: Request) -> AuthUser:
    token = _extract_bearer_token(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHORIZED_DETAIL)

    user = decode_access_token(token)
    context = current_request_context(request)
    if context is not None:
        context.user_id = user.sub
    return user
