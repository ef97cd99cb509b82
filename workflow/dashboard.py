# workflow/dashboard.py

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.orm import selectinload

from extensions import db
from models import (
    COST_ESTIMATE_STATUS_PENDING_APPROVAL,
    PURCHASE_ORDER_STATUS_COMPLETED,
    PURCHASE_ORDER_STATUS_IN_PROGRESS,
    PURCHASE_ORDER_STATUS_PENDING_VALIDATION,
    CostEstimate,
    PurchaseOrder,
    User,
)
from permissions import require_active

RECENT_LIMIT = 5
PENDING_LIMIT = 5


def _count_by(column) -> dict[str, int]:
    rows = db.session.query(column, func.count()).group_by(column).all()
    return {value: count for value, count in rows}


def _status_count(model, status: str) -> int:
    return model.query.filter(model.status == status).count()


def dashboard_summary(actor) -> dict:
    """Landing page data for ``actor``.

    ``pending_approvals`` only contains the queues the actor can act on, and
    ``stats["total_users"]`` is None unless the actor manages users.
    """
    require_active(actor)

    stats = {
        "total_purchase_orders": PurchaseOrder.query.count(),
        "pending_validation": _status_count(PurchaseOrder, PURCHASE_ORDER_STATUS_PENDING_VALIDATION),
        "in_progress": _status_count(PurchaseOrder, PURCHASE_ORDER_STATUS_IN_PROGRESS),
        "completed": _status_count(PurchaseOrder, PURCHASE_ORDER_STATUS_COMPLETED),
        "total_cost_estimates": CostEstimate.query.count(),
        "pending_approval": _status_count(CostEstimate, COST_ESTIMATE_STATUS_PENDING_APPROVAL),
        "total_users": (
            User.query.filter(User.is_active.is_(True)).count() if actor.can_manage_users else None
        ),
    }

    recent_purchase_orders = (
        PurchaseOrder.query.options(selectinload(PurchaseOrder.created_by))
        .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .limit(RECENT_LIMIT)
        .all()
    )

    pending_approvals = {}
    if actor.can_validate_purchase_orders:
        pending_approvals["purchase_orders"] = (
            PurchaseOrder.query.options(selectinload(PurchaseOrder.created_by))
            .filter(PurchaseOrder.status == PURCHASE_ORDER_STATUS_PENDING_VALIDATION)
            .order_by(PurchaseOrder.created_at.asc(), PurchaseOrder.id.asc())
            .limit(PENDING_LIMIT)
            .all()
        )
    if actor.can_approve_cost_estimates:
        pending_approvals["cost_estimates"] = (
            CostEstimate.query.options(
                selectinload(CostEstimate.purchase_order),
                selectinload(CostEstimate.created_by),
            )
            .filter(CostEstimate.status == COST_ESTIMATE_STATUS_PENDING_APPROVAL)
            .order_by(CostEstimate.created_at.asc(), CostEstimate.id.asc())
            .limit(PENDING_LIMIT)
            .all()
        )

    return {
        "stats": stats,
        "recent_purchase_orders": recent_purchase_orders,
        "pending_approvals": pending_approvals,
        "charts": {
            "purchase_order_statuses": _count_by(PurchaseOrder.status),
            "priority_distribution": _count_by(PurchaseOrder.priority),
        },
        "permissions": {
            "can_manage_users": actor.can_manage_users,
            "can_validate_purchase_orders": actor.can_validate_purchase_orders,
            "can_approve_cost_estimates": actor.can_approve_cost_estimates,
            "can_create_cost_estimates": actor.can_create_cost_estimates,
            "can_complete_purchase_orders": actor.can_complete_purchase_orders,
        },
    }
