"""Procurement workflow operations.

Every mutating operation takes the acting ``User`` first and checks, in
order: capability, existence, current status, then input.
"""

from workflow.cost_estimates import (
    add_cost_estimate_item,
    approve_cost_estimate,
    create_cost_estimate,
    delete_cost_estimate,
    get_cost_estimate,
    reject_cost_estimate,
    remove_cost_estimate_item,
    update_cost_estimate,
    update_cost_estimate_item,
)
from workflow.dashboard import dashboard_summary
from workflow.errors import (
    CapabilityError,
    GuardFailedError,
    HasDependentsError,
    NotFoundError,
    NumberingExhaustedError,
    SelfDeleteError,
    ValidationError,
    WorkflowError,
)
from workflow.purchase_orders import (
    complete_purchase_order,
    create_purchase_order,
    delete_purchase_order,
    get_purchase_order,
    update_purchase_order,
    validate_purchase_order,
)
from workflow.queries import list_cost_estimates, list_purchase_orders, list_users
from workflow.users import create_user, delete_user, get_user, record_login, update_user

__all__ = [
    "CapabilityError",
    "GuardFailedError",
    "HasDependentsError",
    "NotFoundError",
    "NumberingExhaustedError",
    "SelfDeleteError",
    "ValidationError",
    "WorkflowError",
    "add_cost_estimate_item",
    "approve_cost_estimate",
    "complete_purchase_order",
    "create_cost_estimate",
    "create_purchase_order",
    "create_user",
    "dashboard_summary",
    "delete_cost_estimate",
    "delete_purchase_order",
    "delete_user",
    "get_cost_estimate",
    "get_purchase_order",
    "get_user",
    "list_cost_estimates",
    "list_purchase_orders",
    "list_users",
    "record_login",
    "reject_cost_estimate",
    "remove_cost_estimate_item",
    "update_cost_estimate",
    "update_cost_estimate_item",
    "update_purchase_order",
    "update_user",
    "validate_purchase_order",
]
