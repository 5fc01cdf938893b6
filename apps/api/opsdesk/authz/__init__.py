from opsdesk.authz.models import Role, User

__all__ = [
    "Role",
    "User",
]
