"""
Trading Engine - Authorization Context.

The caller's identity and roles are passed explicitly into every
operation. Admin checks are pure predicates over the context.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from trading_engine.errors import LedgerError


ADMIN_ROLE = "ADMIN"


@dataclass(frozen=True)
class AuthorizationContext:
    """Authenticated caller."""

    member: str
    """Member the caller acts as."""

    roles: FrozenSet[str] = field(default_factory=frozenset)
    """Granted roles, upper-case."""

    @classmethod
    def of(cls, member: str, roles: Iterable[str] = ()) -> "AuthorizationContext":
        return cls(member=member, roles=frozenset(role.upper() for role in roles))

    @classmethod
    def admin(cls, member: str) -> "AuthorizationContext":
        return cls.of(member, [ADMIN_ROLE])


def has_admin_rights(ctx: AuthorizationContext) -> bool:
    """True if the caller holds the admin role."""
    return ADMIN_ROLE in ctx.roles


def resolve_target_member(ctx: AuthorizationContext, member: Optional[str]) -> str:
    """
    Member an operation acts on.

    Acting on anyone but yourself needs admin rights.

    Raises:
        LedgerError: NA_ADMIN_REQUIRED
    """
    if member is None or member == ctx.member:
        return ctx.member
    if not has_admin_rights(ctx):
        raise LedgerError(
            "NA_ADMIN_REQUIRED",
            f"{ctx.member} may not act on {member}",
            {"caller": ctx.member, "target": member},
        )
    return member
