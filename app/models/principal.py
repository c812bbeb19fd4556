from __future__ import annotations

from dataclasses import dataclass

_ADMIN_ROLES = frozenset({"admin", "superadmin"})


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity handed over by the identity service.

    Built from a verified bearer token; the progress engine trusts it
    without further lookups.

        user_id: token subject (opaque)
        email:   optional, informational only
        roles:   platform roles (user, admin, superadmin)
    """

    user_id: str
    roles: frozenset[str]
    email: str | None = None

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str]) -> bool:
        return bool(self.roles & roles)

    def is_admin(self) -> bool:
        return bool(self.roles & _ADMIN_ROLES)
