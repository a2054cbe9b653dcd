import pytest

from merchantpay.errors import Forbidden, Unauthenticated
from merchantpay.models.user import Role
from merchantpay.security.guards import AUTHENTICATED, RoutePolicy, authorize, enforce_scope
from merchantpay.services.tokens import VerifiedIdentity


def _identity(role: Role, **scope) -> VerifiedIdentity:
    return VerifiedIdentity(subject_id=f"{role.value}-1", email=f"{role.value}@x.com", role=role, **scope)


CASHIER = _identity(Role.CASHIER, merchant_id="m1", branch_id="b1", pos_id="p1")
BRANCH_ADMIN = _identity(Role.BRANCH_ADMIN, merchant_id="m1", branch_id="b1")
ADMIN = _identity(Role.ADMIN, merchant_id="m1")
SUPERADMIN = _identity(Role.SUPERADMIN)


def test_cashier_is_forbidden_from_admin_route():
    with pytest.raises(Forbidden):
        authorize(CASHIER, RoutePolicy.of(Role.ADMIN, Role.BRANCH_ADMIN))


def test_empty_allow_set_permits_any_authenticated_user():
    assert authorize(CASHIER, AUTHENTICATED) is CASHIER


def test_missing_identity_is_unauthenticated_even_for_open_policy():
    with pytest.raises(Unauthenticated):
        authorize(None, AUTHENTICATED)
    with pytest.raises(Unauthenticated):
        authorize(None, RoutePolicy.of(Role.CASHIER))


def test_superadmin_has_no_implicit_pass():
    with pytest.raises(Forbidden):
        authorize(SUPERADMIN, RoutePolicy.of(Role.ADMIN))
    assert authorize(SUPERADMIN, RoutePolicy.of(Role.ADMIN, Role.SUPERADMIN)) is SUPERADMIN


def test_listed_role_is_permitted():
    assert authorize(BRANCH_ADMIN, RoutePolicy.of(Role.ADMIN, Role.BRANCH_ADMIN)) is BRANCH_ADMIN


def test_scope_superadmin_is_platform_wide():
    assert enforce_scope(SUPERADMIN, merchant_id="m9", branch_id="b9", pos_id="p9") is SUPERADMIN


def test_scope_rejects_other_merchant():
    with pytest.raises(Forbidden):
        enforce_scope(ADMIN, merchant_id="m2")


def test_scope_admin_is_not_bound_to_branch_or_pos():
    assert enforce_scope(ADMIN, merchant_id="m1", branch_id="b7", pos_id="p7") is ADMIN


def test_scope_branch_admin_is_bound_to_branch():
    assert enforce_scope(BRANCH_ADMIN, merchant_id="m1", branch_id="b1", pos_id="p5") is BRANCH_ADMIN
    with pytest.raises(Forbidden):
        enforce_scope(BRANCH_ADMIN, merchant_id="m1", branch_id="b2")


def test_scope_cashier_is_bound_to_pos():
    assert enforce_scope(CASHIER, merchant_id="m1", branch_id="b1", pos_id="p1") is CASHIER
    with pytest.raises(Forbidden):
        enforce_scope(CASHIER, merchant_id="m1", branch_id="b1", pos_id="p2")
