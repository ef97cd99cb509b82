# workflow/queries.py
"""
Filtered, paginated listings.

Filters come in as raw mappings (query-string style). Values that are not a
known status / priority / type / role are ignored rather than rejected, and
search terms match case-insensitively anywhere in the listed columns.
"""

from __future__ import annotations

from typing import Any, Mapping

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.orm import selectinload

from models import (
    COST_ESTIMATE_STATUSES,
    COST_ESTIMATE_TYPES,
    PRIORITIES,
    PURCHASE_ORDER_STATUSES,
    CostEstimate,
    PurchaseOrder,
    User,
)
from permissions import MANAGE_USERS, ROLES, require_capability
from workflow.inputs import clean_text, parse_int

USER_STATUS_ACTIVE = "active"
USER_STATUS_INACTIVE = "inactive"


def _filter_value(filters: Mapping[str, Any] | None, key: str) -> str | None:
    if not filters:
        return None
    return clean_text(filters.get(key))


def _page_args(page: Any, per_page: Any) -> tuple[int, int]:
    default_per_page = int(current_app.config.get("PER_PAGE", 15))
    max_per_page = int(current_app.config.get("MAX_PER_PAGE", 100))

    page = parse_int(page)
    if page is None:
        page = 1
    per_page = parse_int(per_page)
    if per_page is None:
        per_page = default_per_page

    page = max(page, 1)
    per_page = min(max(per_page, 1), max_per_page)
    return page, per_page


def _contains(term: str) -> str:
    return f"%{term}%"


def list_purchase_orders(filters: Mapping[str, Any] | None = None, page: Any = 1, per_page: Any = None):
    """Purchase orders newest first, filtered by status, priority and a free-text search."""
    query = PurchaseOrder.query.options(selectinload(PurchaseOrder.created_by))

    status = _filter_value(filters, "status")
    if status in PURCHASE_ORDER_STATUSES:
        query = query.filter(PurchaseOrder.status == status)

    priority = _filter_value(filters, "priority")
    if priority in PRIORITIES:
        query = query.filter(PurchaseOrder.priority == priority)

    search = _filter_value(filters, "search")
    if search:
        pattern = _contains(search)
        query = query.filter(
            or_(
                PurchaseOrder.po_number.ilike(pattern),
                PurchaseOrder.title.ilike(pattern),
                PurchaseOrder.description.ilike(pattern),
            )
        )

    page, per_page = _page_args(page, per_page)
    return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).paginate(
        page=page, per_page=per_page, error_out=False
    )


def list_cost_estimates(filters: Mapping[str, Any] | None = None, page: Any = 1, per_page: Any = None):
    query = CostEstimate.query.options(
        selectinload(CostEstimate.purchase_order),
        selectinload(CostEstimate.created_by),
    )

    status = _filter_value(filters, "status")
    if status in COST_ESTIMATE_STATUSES:
        query = query.filter(CostEstimate.status == status)

    estimate_type = _filter_value(filters, "type")
    if estimate_type in COST_ESTIMATE_TYPES:
        query = query.filter(CostEstimate.type == estimate_type)

    search = _filter_value(filters, "search")
    if search:
        pattern = _contains(search)
        query = query.filter(
            or_(
                CostEstimate.ce_number.ilike(pattern),
                CostEstimate.title.ilike(pattern),
                CostEstimate.purchase_order.has(
                    or_(
                        PurchaseOrder.po_number.ilike(pattern),
                        PurchaseOrder.title.ilike(pattern),
                    )
                ),
            )
        )

    page, per_page = _page_args(page, per_page)
    return query.order_by(CostEstimate.created_at.desc(), CostEstimate.id.desc()).paginate(
        page=page, per_page=per_page, error_out=False
    )


def list_users(actor, filters: Mapping[str, Any] | None = None, page: Any = 1, per_page: Any = None):
    """Accounts ordered by name; ``status`` filter is ``active`` or ``inactive``."""
    require_capability(actor, MANAGE_USERS)
    query = User.query

    role = _filter_value(filters, "role")
    if role in ROLES:
        query = query.filter(User.role == role)

    status = _filter_value(filters, "status")
    if status == USER_STATUS_ACTIVE:
        query = query.filter(User.is_active.is_(True))
    elif status == USER_STATUS_INACTIVE:
        query = query.filter(User.is_active.is_(False))

    search = _filter_value(filters, "search")
    if search:
        pattern = _contains(search)
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

    page, per_page = _page_args(page, per_page)
    return query.order_by(User.name.asc(), User.id.asc()).paginate(
        page=page, per_page=per_page, error_out=False
    )
