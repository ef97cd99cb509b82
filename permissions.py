# permissions.py
"""
Role -> capability mapping.

Capabilities are a pure function of the user's role; there is no permission
table and no role inheritance. Admin and bsp can both validate; only admin
(and superadmin) can complete.
"""

from __future__ import annotations

ROLE_SUPERADMIN = "superadmin"
ROLE_ADMIN = "admin"
ROLE_UNIT_KERJA = "unit_kerja"
ROLE_BSP = "bsp"
ROLE_KKF = "kkf"
ROLE_DAU = "dau"

ROLES = (
    ROLE_SUPERADMIN,
    ROLE_ADMIN,
    ROLE_UNIT_KERJA,
    ROLE_BSP,
    ROLE_KKF,
    ROLE_DAU,
)

DEFAULT_ROLE = ROLE_UNIT_KERJA

ROLE_LABELS = {
    ROLE_SUPERADMIN: "Super Administrator",
    ROLE_ADMIN: "Administrator",
    ROLE_UNIT_KERJA: "Unit Kerja",
    ROLE_BSP: "BSP",
    ROLE_KKF: "KKF",
    ROLE_DAU: "DAU",
}

MANAGE_USERS = "manage_users"
VALIDATE_PURCHASE_ORDERS = "validate_purchase_orders"
APPROVE_COST_ESTIMATES = "approve_cost_estimates"
CREATE_COST_ESTIMATES = "create_cost_estimates"
COMPLETE_PURCHASE_ORDERS = "complete_purchase_orders"

CAPABILITY_ROLES: dict[str, frozenset[str]] = {
    MANAGE_USERS: frozenset({ROLE_SUPERADMIN}),
    VALIDATE_PURCHASE_ORDERS: frozenset({ROLE_SUPERADMIN, ROLE_ADMIN, ROLE_BSP}),
    APPROVE_COST_ESTIMATES: frozenset({ROLE_SUPERADMIN, ROLE_ADMIN, ROLE_DAU}),
    CREATE_COST_ESTIMATES: frozenset({ROLE_SUPERADMIN, ROLE_ADMIN, ROLE_BSP}),
    COMPLETE_PURCHASE_ORDERS: frozenset({ROLE_SUPERADMIN, ROLE_ADMIN}),
}


def capabilities_for_role(role: str | None) -> frozenset[str]:
    if role not in ROLES:
        return frozenset()
    return frozenset(
        capability for capability, roles in CAPABILITY_ROLES.items() if role in roles
    )


def _is_active_actor(user) -> bool:
    if user is None or not getattr(user, "id", None):
        return False
    return bool(getattr(user, "is_active", False))


def has_capability(user, capability: str) -> bool:
    """True when ``user`` is an active account whose role grants ``capability``."""
    if capability not in CAPABILITY_ROLES:
        raise KeyError(f"Unknown capability: {capability}")
    if not _is_active_actor(user):
        return False
    return getattr(user, "role", None) in CAPABILITY_ROLES[capability]


def require_active(user) -> None:
    from workflow.errors import CapabilityError

    if not _is_active_actor(user):
        raise CapabilityError(None, actor_id=getattr(user, "id", None))


def require_capability(user, capability: str) -> None:
    from workflow.errors import CapabilityError

    if not has_capability(user, capability):
        raise CapabilityError(capability, actor_id=getattr(user, "id", None))
