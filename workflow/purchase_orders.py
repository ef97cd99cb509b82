# workflow/purchase_orders.py

from __future__ import annotations

import logging
from typing import Any, Mapping

from extensions import db
from models import (
    PRIORITIES,
    PRIORITY_MEDIUM,
    PURCHASE_ORDER_OPEN_STATUSES,
    PURCHASE_ORDER_STATUS_COMPLETED,
    PURCHASE_ORDER_STATUS_DRAFT,
    PURCHASE_ORDER_STATUS_IN_PROGRESS,
    PURCHASE_ORDER_STATUS_VALIDATED,
    PurchaseOrder,
    utcnow,
)
from permissions import (
    COMPLETE_PURCHASE_ORDERS,
    VALIDATE_PURCHASE_ORDERS,
    require_active,
    require_capability,
)
from workflow.errors import GuardFailedError, NotFoundError, ValidationError
from workflow.inputs import (
    amount_error,
    clean_text,
    is_blank,
    parse_date,
    parse_decimal,
    quantize_amount,
)
from workflow.numbering import insert_numbered
from workflow.transaction import atomic

logger = logging.getLogger(__name__)

PO_NUMBER_PREFIX = "PO"
ENTITY = "purchase_order"

TITLE_MAX_LENGTH = 255
ESTIMATED_VALUE_PRECISION = 15


def get_purchase_order(po_id: int) -> PurchaseOrder:
    purchase_order = db.session.get(PurchaseOrder, po_id)
    if purchase_order is None:
        raise NotFoundError(ENTITY, po_id)
    return purchase_order


def _guard(purchase_order: PurchaseOrder, action: str, allowed: bool, allowed_statuses) -> None:
    if not allowed:
        raise GuardFailedError(
            ENTITY, purchase_order.id, action, purchase_order.status, allowed_statuses
        )


def _clean_fields(fields: Mapping[str, Any]) -> dict:
    errors: dict[str, str] = {}

    title = clean_text(fields.get("title"))
    if not title:
        errors["title"] = "Title is required."
    elif len(title) > TITLE_MAX_LENGTH:
        errors["title"] = "Title cannot exceed 255 characters."

    estimated_value = None
    raw_value = fields.get("estimated_value")
    if not is_blank(raw_value):
        estimated_value = parse_decimal(raw_value)
        if estimated_value is None:
            errors["estimated_value"] = "Estimated value must be a number."
        elif estimated_value < 0:
            errors["estimated_value"] = "Estimated value cannot be negative."
        else:
            message = amount_error(estimated_value, "Estimated value", ESTIMATED_VALUE_PRECISION)
            if message:
                errors["estimated_value"] = message
            else:
                estimated_value = quantize_amount(estimated_value)

    priority = clean_text(fields.get("priority"))
    if priority is None:
        priority = PRIORITY_MEDIUM
    else:
        priority = priority.lower()
        if priority not in PRIORITIES:
            errors["priority"] = "Priority must be one of: " + ", ".join(PRIORITIES) + "."

    required_by = None
    raw_required_by = fields.get("required_by")
    if not is_blank(raw_required_by):
        required_by = parse_date(raw_required_by)
        if required_by is None:
            errors["required_by"] = "Required by must be a valid date."
        elif required_by <= utcnow().date():
            errors["required_by"] = "Required by date must be in the future."

    if errors:
        raise ValidationError(errors)

    return {
        "title": title,
        "description": clean_text(fields.get("description")),
        "estimated_value": estimated_value,
        "priority": priority,
        "required_by": required_by,
    }


def create_purchase_order(actor, fields: Mapping[str, Any]) -> PurchaseOrder:
    """Create a draft purchase order with the next ``PO-<year>-NNNN`` number."""
    require_active(actor)
    values = _clean_fields(fields)

    def build(po_number: str) -> PurchaseOrder:
        purchase_order = PurchaseOrder(
            po_number=po_number,
            status=PURCHASE_ORDER_STATUS_DRAFT,
            created_by_id=actor.id,
            **values,
        )
        db.session.add(purchase_order)
        db.session.flush()
        return purchase_order

    purchase_order = insert_numbered(PO_NUMBER_PREFIX, PurchaseOrder.po_number, build)
    logger.info(
        "PO created id=%s po_number=%s created_by_id=%s",
        purchase_order.id,
        purchase_order.po_number,
        actor.id,
    )
    return purchase_order


def update_purchase_order(actor, po_id: int, fields: Mapping[str, Any]) -> PurchaseOrder:
    require_active(actor)
    purchase_order = get_purchase_order(po_id)
    _guard(purchase_order, "update", purchase_order.can_be_edited(), PURCHASE_ORDER_OPEN_STATUSES)
    values = _clean_fields(fields)

    with atomic():
        for field, value in values.items():
            setattr(purchase_order, field, value)

    logger.info(
        "PO updated id=%s po_number=%s updated_by_id=%s",
        purchase_order.id,
        purchase_order.po_number,
        actor.id,
    )
    return purchase_order


def validate_purchase_order(actor, po_id: int, notes: str | None = None) -> PurchaseOrder:
    require_capability(actor, VALIDATE_PURCHASE_ORDERS)
    purchase_order = get_purchase_order(po_id)
    _guard(
        purchase_order, "validate", purchase_order.can_be_validated(), PURCHASE_ORDER_OPEN_STATUSES
    )

    with atomic():
        purchase_order.status = PURCHASE_ORDER_STATUS_VALIDATED
        purchase_order.validated_by_id = actor.id
        purchase_order.validated_at = utcnow()
        purchase_order.validation_notes = clean_text(notes)

    logger.info(
        "PO validated id=%s po_number=%s validated_by_id=%s",
        purchase_order.id,
        purchase_order.po_number,
        actor.id,
    )
    return purchase_order


def complete_purchase_order(actor, po_id: int, notes: str | None = None) -> PurchaseOrder:
    require_capability(actor, COMPLETE_PURCHASE_ORDERS)
    purchase_order = get_purchase_order(po_id)
    _guard(
        purchase_order,
        "complete",
        purchase_order.can_be_completed(),
        (PURCHASE_ORDER_STATUS_IN_PROGRESS,),
    )

    with atomic():
        purchase_order.status = PURCHASE_ORDER_STATUS_COMPLETED
        purchase_order.completed_by_id = actor.id
        purchase_order.completed_at = utcnow()
        purchase_order.completion_notes = clean_text(notes)

    logger.info(
        "PO completed id=%s po_number=%s completed_by_id=%s",
        purchase_order.id,
        purchase_order.po_number,
        actor.id,
    )
    return purchase_order


def delete_purchase_order(actor, po_id: int) -> None:
    """Delete a purchase order that has not passed validation, with its cost estimates."""
    require_active(actor)
    purchase_order = get_purchase_order(po_id)
    _guard(
        purchase_order, "delete", purchase_order.can_be_deleted(), PURCHASE_ORDER_OPEN_STATUSES
    )

    po_number = purchase_order.po_number
    with atomic():
        db.session.delete(purchase_order)

    logger.info(
        "PO deleted id=%s po_number=%s deleted_by_id=%s",
        po_id,
        po_number,
        actor.id,
    )
