"""
Actor -- explicit caller identity.

Every lifecycle operation receives the acting user as a value object.  The
engine never looks up a "current user"; the identity/role provider that
built the Actor is an external collaborator.
"""

from dataclasses import dataclass, field
from uuid import UUID


@dataclass(frozen=True)
class Actor:
    """An authenticated caller as supplied by the identity/role provider."""

    actor_id: UUID
    roles: frozenset[str] = field(default_factory=frozenset)
    department_id: str | None = None
    display_name: str | None = None

    def __post_init__(self):
        # Accept any iterable of role names; normalize to an upper-case frozenset.
        object.__setattr__(
            self, "roles", frozenset(r.strip().upper() for r in self.roles if r)
        )

    def has_any_role(self, roles) -> bool:
        return not self.roles.isdisjoint(r.upper() for r in roles)
