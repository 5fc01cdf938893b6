from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from opsdesk.authz.models import Role, User
from opsdesk.metrics import observe_authz_role_cache_hit, observe_authz_role_cache_miss, observe_authz_role_lookups
from opsdesk.platform.security.context import AuthContext
from opsdesk.platform.security.permissions import CapabilitySet, PermissionKey

_CACHE_KEY = "role_permissions"


def normalize_role_key(value: str | None) -> str:
    return (value or "").strip().lower()


@dataclass(slots=True)
class RolePermissionCache:
    """Resolved capability sets keyed by normalized role key, valid for a single request."""

    _entries: dict[str, CapabilitySet] = field(default_factory=dict)

    def get(self, role_key: str) -> CapabilitySet | None:
        return self._entries.get(role_key)

    def put(self, role_key: str, capabilities: CapabilitySet) -> None:
        self._entries[role_key] = capabilities

    def __contains__(self, role_key: object) -> bool:
        return role_key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def role_cache_for(ctx: AuthContext) -> RolePermissionCache:
    cache = ctx._cache.get(_CACHE_KEY)
    if not isinstance(cache, RolePermissionCache):
        cache = RolePermissionCache()
        ctx._cache[_CACHE_KEY] = cache
    return cache


@dataclass(frozen=True, slots=True)
class PermissionResolver:
    def resolve(self, session: Session, role_key: str | None, cache: RolePermissionCache) -> CapabilitySet:
        normalized = normalize_role_key(role_key)
        if not normalized:
            return CapabilitySet()
        if normalized == PermissionKey.ADMIN.value:
            return CapabilitySet.everything()

        cached = cache.get(normalized)
        if cached is not None:
            observe_authz_role_cache_hit()
            return cached
        observe_authz_role_cache_miss()

        capabilities = CapabilitySet.of(self._load_role_permissions(session, normalized))
        cache.put(normalized, capabilities)
        return capabilities

    def find_users_with_any(
        self,
        session: Session,
        required_any_of: Iterable[str],
        cache: RolePermissionCache,
        *,
        exclude_user_id: str | None = None,
    ) -> list[str]:
        """Ids of active users, other than ``exclude_user_id``, whose role grants any required capability."""
        required = list(required_any_of)
        user_ids: list[str] = []
        rows = session.execute(select(User.id, User.role).where(User.active.is_(True)).order_by(User.id)).all()
        for user_id, role in rows:
            if user_id == exclude_user_id:
                continue
            if not normalize_role_key(role):
                continue
            if self.resolve(session, role, cache).intersects_or_admin(required):
                user_ids.append(user_id)
        return user_ids

    def _load_role_permissions(self, session: Session, normalized: str) -> list[str]:
        role = session.scalar(select(Role).where(Role.key == normalized).limit(1))
        observe_authz_role_lookups()
        if role is None:
            role = session.get(Role, normalized)
            observe_authz_role_lookups()
        if role is None:
            return []
        return list(role.permissions or [])


permission_resolver = PermissionResolver()
