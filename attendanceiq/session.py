from dataclasses import dataclass, field
from typing import Iterable

# Highest precedence first.
ROLE_PRECEDENCE: tuple[str, ...] = ("admin", "user")
DEFAULT_ROLE = "user"


def order_roles(roles: Iterable[str]) -> tuple[str, ...]:
    """Deduplicate and sort roles by precedence, dropping unknown values."""
    held = {str(role).strip().lower() for role in roles}
    return tuple(role for role in ROLE_PRECEDENCE if role in held)


def effective_role(roles: Iterable[str]) -> str:
    ordered = order_roles(roles)
    return ordered[0] if ordered else DEFAULT_ROLE


@dataclass(frozen=True)
class SessionContext:
    """
    Identity of the authenticated caller.

    Built once per request after the bearer token is verified and handed to
    every service that needs to know who is acting. Signing out revokes the
    token the context was built from, so no later request can rebuild it.
    """

    user_id: str
    email: str
    roles: tuple[str, ...] = field(default=(DEFAULT_ROLE,))
    token_id: str | None = None
    expires_at: int | None = None

    @property
    def role(self) -> str:
        return effective_role(self.roles)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def can_access(self, owner_id: str | None) -> bool:
        return self.is_admin or (owner_id is not None and owner_id == self.user_id)
