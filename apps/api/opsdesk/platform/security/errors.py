from __future__ import annotations

from collections.abc import Iterable

from opsdesk.platform.security.context import AuthContext


class AuthorizationError(Exception):
    """Base authorization error for capability and ownership checks."""


class MissingCapabilityError(AuthorizationError):
    """Raised when the acting user holds none of the required capabilities."""

    def __init__(self, message: str, required: Iterable[str]) -> None:
        self.required = sorted({str(item) for item in required})
        super().__init__(message)


def ensure_any_capability(ctx: AuthContext, required: Iterable[str], message: str) -> None:
    required_keys = list(required)
    if not ctx.capabilities.intersects_or_admin(required_keys):
        raise MissingCapabilityError(message, required_keys)
