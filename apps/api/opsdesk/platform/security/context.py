from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from opsdesk.platform.security.permissions import CapabilitySet


@dataclass(slots=True)
class AuthContext:
    """Acting user for one request: identity, resolved capabilities and request-scoped caches."""

    user_id: str
    full_name: str = ""
    role_key: str = ""
    correlation_id: str | None = None
    capabilities: CapabilitySet = field(default_factory=CapabilitySet)
    _cache: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def display_name(self) -> str:
        return self.full_name or "User"

    @property
    def is_admin(self) -> bool:
        return self.capabilities.is_admin
