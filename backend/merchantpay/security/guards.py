"""Role and scope authorization.

Routes declare their allowed roles explicitly through a RoutePolicy. Role
checks are exact set membership: superadmin does not pass an admin-only
route unless the route lists it.
"""
from dataclasses import dataclass, field
import logging

from merchantpay.errors import Forbidden, Unauthenticated
from merchantpay.models.user import Role
from merchantpay.services.tokens import VerifiedIdentity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutePolicy:
    """Allowed roles for a route. An empty set admits any authenticated user."""

    allowed_roles: frozenset[Role] = field(default_factory=frozenset)

    @classmethod
    def of(cls, *roles: Role) -> "RoutePolicy":
        return cls(frozenset(roles))


AUTHENTICATED = RoutePolicy()


def authorize(identity: VerifiedIdentity | None, policy: RoutePolicy) -> VerifiedIdentity:
    """Permit the request or raise Unauthenticated / Forbidden."""
    if identity is None:
        raise Unauthenticated()

    if policy.allowed_roles and identity.role not in policy.allowed_roles:
        logger.info(f"Role {identity.role.value} denied for user {identity.subject_id}")
        raise Forbidden()

    return identity


def enforce_scope(
    identity: VerifiedIdentity,
    merchant_id: str | None = None,
    branch_id: str | None = None,
    pos_id: str | None = None,
) -> VerifiedIdentity:
    """Check that the identity may touch the given merchant/branch/POS.

    Superadmins are platform-wide. Everyone else is bound to their merchant;
    branch admins and cashiers to their branch; cashiers to their POS.
    """
    if identity.role is Role.SUPERADMIN:
        return identity

    if merchant_id is not None and identity.merchant_id != merchant_id:
        raise Forbidden("Access denied to this merchant")

    if branch_id is not None and identity.role in (Role.BRANCH_ADMIN, Role.CASHIER):
        if identity.branch_id != branch_id:
            raise Forbidden("Access denied to this branch")

    if pos_id is not None and identity.role is Role.CASHIER:
        if identity.pos_id != pos_id:
            raise Forbidden("Cashier can only access their own POS")

    return identity
