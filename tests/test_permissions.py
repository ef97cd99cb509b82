import pytest

from models import User
from permissions import (
    APPROVE_COST_ESTIMATES,
    CAPABILITY_ROLES,
    COMPLETE_PURCHASE_ORDERS,
    CREATE_COST_ESTIMATES,
    MANAGE_USERS,
    ROLES,
    VALIDATE_PURCHASE_ORDERS,
    capabilities_for_role,
    has_capability,
    require_active,
    require_capability,
)
from workflow.errors import CapabilityError

EXPECTED = {
    "superadmin": {
        MANAGE_USERS,
        VALIDATE_PURCHASE_ORDERS,
        APPROVE_COST_ESTIMATES,
        CREATE_COST_ESTIMATES,
        COMPLETE_PURCHASE_ORDERS,
    },
    "admin": {
        VALIDATE_PURCHASE_ORDERS,
        APPROVE_COST_ESTIMATES,
        CREATE_COST_ESTIMATES,
        COMPLETE_PURCHASE_ORDERS,
    },
    "unit_kerja": set(),
    "bsp": {VALIDATE_PURCHASE_ORDERS, CREATE_COST_ESTIMATES},
    "kkf": set(),
    "dau": {APPROVE_COST_ESTIMATES},
}


def _user(role: str, is_active: bool = True, user_id: int = 1) -> User:
    return User(id=user_id, name=role, email=f"{role}@example.com", role=role, is_active=is_active)


@pytest.mark.parametrize("role", ROLES)
def test_capability_table_is_exact(role):
    assert capabilities_for_role(role) == EXPECTED[role]

    user = _user(role)
    for capability in CAPABILITY_ROLES:
        assert has_capability(user, capability) is (capability in EXPECTED[role])


@pytest.mark.parametrize("role", ROLES)
def test_user_properties_match_capabilities(role):
    user = _user(role)
    assert user.can_manage_users is (MANAGE_USERS in EXPECTED[role])
    assert user.can_validate_purchase_orders is (VALIDATE_PURCHASE_ORDERS in EXPECTED[role])
    assert user.can_approve_cost_estimates is (APPROVE_COST_ESTIMATES in EXPECTED[role])
    assert user.can_create_cost_estimates is (CREATE_COST_ESTIMATES in EXPECTED[role])
    assert user.can_complete_purchase_orders is (COMPLETE_PURCHASE_ORDERS in EXPECTED[role])


def test_inactive_user_has_no_capabilities():
    user = _user("superadmin", is_active=False)
    assert not any(has_capability(user, capability) for capability in CAPABILITY_ROLES)

    with pytest.raises(CapabilityError) as excinfo:
        require_active(user)
    assert excinfo.value.capability is None
    assert excinfo.value.code == "capability_denied"


def test_missing_actor_has_no_capabilities():
    assert has_capability(None, MANAGE_USERS) is False
    with pytest.raises(CapabilityError):
        require_capability(None, VALIDATE_PURCHASE_ORDERS)


def test_require_capability_reports_capability_and_actor():
    with pytest.raises(CapabilityError) as excinfo:
        require_capability(_user("dau", user_id=7), CREATE_COST_ESTIMATES)

    assert excinfo.value.capability == CREATE_COST_ESTIMATES
    assert excinfo.value.actor_id == 7
    assert excinfo.value.to_dict()["capability"] == CREATE_COST_ESTIMATES


def test_unknown_role_grants_nothing():
    assert capabilities_for_role("chairman") == frozenset()
    assert capabilities_for_role(None) == frozenset()


def test_unknown_capability_is_a_programming_error():
    with pytest.raises(KeyError):
        has_capability(_user("admin"), "approve_everything")


def test_role_labels():
    assert _user("unit_kerja").role_label == "Unit Kerja"
    assert _user("superadmin").role_label == "Super Administrator"
