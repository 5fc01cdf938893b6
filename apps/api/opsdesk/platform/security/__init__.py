from opsdesk.platform.security.context import AuthContext
from opsdesk.platform.security.errors import AuthorizationError, MissingCapabilityError, ensure_any_capability
from opsdesk.platform.security.permissions import ALL_PERMISSIONS, CapabilitySet, PermissionKey, has_permission
from opsdesk.platform.security.resolver import (
    PermissionResolver,
    RolePermissionCache,
    normalize_role_key,
    permission_resolver,
    role_cache_for,
)

__all__ = [
    "AuthContext",
    "AuthorizationError",
    "MissingCapabilityError",
    "ensure_any_capability",
    "ALL_PERMISSIONS",
    "CapabilitySet",
    "PermissionKey",
    "has_permission",
    "PermissionResolver",
    "RolePermissionCache",
    "normalize_role_key",
    "permission_resolver",
    "role_cache_for",
]
