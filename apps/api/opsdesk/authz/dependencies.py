from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from opsdesk.authz.models import User
from opsdesk.context import get_correlation_id
from opsdesk.core.auth import UNAUTHORIZED_DETAIL, AuthUser, authenticate_request
from opsdesk.core.context import current_request_context
from opsdesk.core.database import get_db
from opsdesk.platform.security.context import AuthContext
from opsdesk.platform.security.resolver import normalize_role_key, permission_resolver, role_cache_for

INACTIVE_ACCOUNT_DETAIL = "Your account is inactive."


def build_auth_context(session: Session, auth_user: AuthUser, *, correlation_id: str | None = None) -> AuthContext:
    """Load the user record behind a verified token and resolve the capabilities of its role."""
    user = session.get(User, auth_user.sub)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHORIZED_DETAIL)
    if not user.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=INACTIVE_ACCOUNT_DETAIL)

    ctx = AuthContext(
        user_id=user.id,
        full_name=user.full_name or auth_user.name or "User",
        role_key=normalize_role_key(user.role),
        correlation_id=correlation_id,
    )
    ctx.capabilities = permission_resolver.resolve(session, ctx.role_key, role_cache_for(ctx))
    return ctx


def resolve_request_auth_context(request: Request, session: Session) -> AuthContext:
    context = current_request_context(request)
    correlation_id = get_correlation_id() or (context.correlation_id if context is not None else None)
    return build_auth_context(session, authenticate_request(request), correlation_id=correlation_id)


def get_auth_context(request: Request, db: Session = Depends(get_db)) -> AuthContext:
    return resolve_request_auth_context(request, db)
