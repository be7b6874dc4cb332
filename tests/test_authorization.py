import time

import pytest

from tms_middleware.core.authorization import (
    OPERATION_ROLES,
    authorize,
    authorize_roles,
)
from tms_middleware.core.exceptions import ForbiddenError, UnauthenticatedError
from tms_middleware.rpc.server import build_router
from tms_middleware.schemas.auth import TokenClaims


def make_claims(*roles: str) -> TokenClaims:
    now = int(time.time())
    return TokenClaims(
        sub="user-1",
        email="user@tms.com",
        roles=list(roles),
        permissions=[],
        type="access",
        jti="jti",
        iat=now,
        exp=now + 60,
    )


@pytest.mark.parametrize(
    "operation, role",
    [
        ("user.findAll", "admin"),
        ("user.findAll", "super-admin"),
        ("user.findById", "manager"),
        ("order.findAll", "dispatcher"),
        ("order.updateStatus", "driver"),
        ("order.create", "customer"),
        ("auth.getProfile", "customer"),
    ],
)
def test_authorize_allows_listed_roles(operation, role):
    authorize(make_claims(role), operation)


@pytest.mark.parametrize(
    "operation, role",
    [
        ("user.findAll", "manager"),
        ("user.delete", "dispatcher"),
        ("role.create", "manager"),
        ("order.findAll", "customer"),
        ("order.remove", "driver"),
        ("order.updatePaymentStatus", "dispatcher"),
    ],
)
def test_authorize_denies_other_roles(operation, role):
    with pytest.raises(ForbiddenError):
        authorize(make_claims(role), operation)


def test_role_names_compare_case_insensitively():
    authorize(make_claims("ADMIN"), "user.delete")
    authorize_roles(make_claims("Dispatcher"), ["dispatcher"])


def test_any_of_several_roles_is_enough():
    authorize(make_claims("customer", "manager"), "user.findById")


def test_unknown_operation_is_forbidden_even_for_admin():
    with pytest.raises(ForbiddenError):
        authorize(make_claims("admin"), "user.dropDatabase")


def test_missing_claims_is_unauthenticated():
    with pytest.raises(UnauthenticatedError):
        authorize(None, "user.findAll")
    with pytest.raises(UnauthenticatedError):
        authorize_roles(None, None)


def test_open_operation_still_requires_authentication():
    authorize_roles(make_claims(), None)
    with pytest.raises(UnauthenticatedError):
        authorize_roles(None, None)


def test_every_protected_rpc_pattern_has_a_rule():
    router = build_router()
    protected = {
        pattern for pattern, handler in router.handlers.items() if handler.protected
    }
    assert protected <= set(OPERATION_ROLES)
