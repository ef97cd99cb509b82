# workflow/cost_estimates.py
"""
Cost estimate / bill of quantities transitions.

Creating a cost estimate moves its purchase order from ``validated`` to
``ce_boq_created`` in the same transaction; deleting a draft one moves it
back. Approval and rejection only touch the cost estimate itself.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from extensions import db
from models import (
    COST_ESTIMATE_DECIDABLE_STATUSES,
    COST_ESTIMATE_STATUS_APPROVED,
    COST_ESTIMATE_STATUS_DRAFT,
    COST_ESTIMATE_STATUS_REJECTED,
    COST_ESTIMATE_TYPES,
    PURCHASE_ORDER_STATUS_CE_BOQ_CREATED,
    PURCHASE_ORDER_STATUS_VALIDATED,
    CostEstimate,
    CostEstimateItem,
    PurchaseOrder,
    utcnow,
)
from permissions import APPROVE_COST_ESTIMATES, CREATE_COST_ESTIMATES, require_capability
from workflow import line_items
from workflow.errors import GuardFailedError, NotFoundError, ValidationError
from workflow.inputs import clean_text
from workflow.numbering import insert_numbered
from workflow.purchase_orders import ENTITY as PURCHASE_ORDER_ENTITY
from workflow.purchase_orders import get_purchase_order
from workflow.transaction import atomic

logger = logging.getLogger(__name__)

CE_NUMBER_PREFIX = "CE"
ENTITY = "cost_estimate"
ITEM_ENTITY = "cost_estimate_item"

TITLE_MAX_LENGTH = 255


def get_cost_estimate(ce_id: int) -> CostEstimate:
    cost_estimate = db.session.get(CostEstimate, ce_id)
    if cost_estimate is None:
        raise NotFoundError(ENTITY, ce_id)
    return cost_estimate


def _get_item(cost_estimate: CostEstimate, item_id: int) -> CostEstimateItem:
    for item in cost_estimate.items:
        if item.id == item_id:
            return item
    raise NotFoundError(ITEM_ENTITY, item_id)


def _guard_purchase_order_accepts_estimate(purchase_order: PurchaseOrder) -> None:
    if not purchase_order.can_have_cost_estimate():
        raise GuardFailedError(
            PURCHASE_ORDER_ENTITY,
            purchase_order.id,
            "create cost estimate for",
            purchase_order.status,
            (PURCHASE_ORDER_STATUS_VALIDATED,),
        )


def _guard_editable(cost_estimate: CostEstimate, action: str) -> None:
    if not cost_estimate.can_be_edited():
        raise GuardFailedError(
            ENTITY, cost_estimate.id, action, cost_estimate.status, (COST_ESTIMATE_STATUS_DRAFT,)
        )


def _guard_decidable(cost_estimate: CostEstimate, action: str, allowed: bool) -> None:
    if not allowed:
        raise GuardFailedError(
            ENTITY, cost_estimate.id, action, cost_estimate.status, COST_ESTIMATE_DECIDABLE_STATUSES
        )


def _clean_fields(fields: Mapping[str, Any], errors: dict[str, str]) -> dict:
    title = clean_text(fields.get("title"))
    if not title:
        errors["title"] = "Title is required."
    elif len(title) > TITLE_MAX_LENGTH:
        errors["title"] = "Title cannot exceed 255 characters."

    estimate_type = clean_text(fields.get("type"))
    if not estimate_type:
        errors["type"] = "Type is required."
    elif estimate_type not in COST_ESTIMATE_TYPES:
        errors["type"] = "Type must be one of: " + ", ".join(COST_ESTIMATE_TYPES) + "."

    return {
        "title": title,
        "description": clean_text(fields.get("description")),
        "type": estimate_type,
    }


def _clean_estimate(fields: Mapping[str, Any], items: Iterable[Mapping]) -> tuple[dict, list]:
    errors: dict[str, str] = {}
    values = _clean_fields(fields, errors)
    cleaned_items = line_items.clean_items(items, errors)
    if errors:
        raise ValidationError(errors)
    return values, cleaned_items


def _clean_single_item(fields: Mapping[str, Any]) -> dict:
    errors: dict[str, str] = {}
    values = line_items.clean_item(fields, "item", errors)
    if errors:
        raise ValidationError(errors)
    return values


def _check_total_with(
    cost_estimate: CostEstimate, values: Mapping, replaced: CostEstimateItem | None = None
) -> None:
    line_totals = [item.total_price for item in cost_estimate.items if item is not replaced]
    line_totals.append(line_items.line_total(values["quantity"], values["unit_price"]))
    message = line_items.total_amount_error(line_totals)
    if message:
        raise ValidationError({"items": message})


def create_cost_estimate(
    actor, po_id: int, fields: Mapping[str, Any], items: Iterable[Mapping]
) -> CostEstimate:
    """Create a draft cost estimate with its items and flip the PO to ``ce_boq_created``."""
    require_capability(actor, CREATE_COST_ESTIMATES)
    purchase_order = get_purchase_order(po_id)
    _guard_purchase_order_accepts_estimate(purchase_order)
    values, cleaned_items = _clean_estimate(fields, items)

    def build(ce_number: str) -> CostEstimate:
        # Re-read under a row lock; a concurrent request may have moved the PO on.
        locked = (
            PurchaseOrder.query.filter_by(id=po_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if locked is None:
            raise NotFoundError(PURCHASE_ORDER_ENTITY, po_id)
        _guard_purchase_order_accepts_estimate(locked)

        cost_estimate = CostEstimate(
            purchase_order=locked,
            ce_number=ce_number,
            status=COST_ESTIMATE_STATUS_DRAFT,
            created_by_id=actor.id,
            **values,
        )
        db.session.add(cost_estimate)
        for index, item_values in enumerate(cleaned_items):
            cost_estimate.items.append(line_items.build_item(item_values, index))
        line_items.recompute_total(cost_estimate)

        locked.status = PURCHASE_ORDER_STATUS_CE_BOQ_CREATED
        db.session.flush()
        return cost_estimate

    cost_estimate = insert_numbered(CE_NUMBER_PREFIX, CostEstimate.ce_number, build)
    logger.info(
        "CE created id=%s ce_number=%s po_id=%s total=%s created_by_id=%s",
        cost_estimate.id,
        cost_estimate.ce_number,
        po_id,
        cost_estimate.total_amount,
        actor.id,
    )
    return cost_estimate


def update_cost_estimate(
    actor, ce_id: int, fields: Mapping[str, Any], items: Iterable[Mapping]
) -> CostEstimate:
    """Replace the header fields and the whole item list of a draft cost estimate."""
    require_capability(actor, CREATE_COST_ESTIMATES)
    cost_estimate = get_cost_estimate(ce_id)
    _guard_editable(cost_estimate, "update")
    values, cleaned_items = _clean_estimate(fields, items)

    with atomic():
        for field, value in values.items():
            setattr(cost_estimate, field, value)
        line_items.replace_items(cost_estimate, cleaned_items)

    logger.info(
        "CE updated id=%s ce_number=%s items=%s total=%s updated_by_id=%s",
        cost_estimate.id,
        cost_estimate.ce_number,
        len(cleaned_items),
        cost_estimate.total_amount,
        actor.id,
    )
    return cost_estimate


def approve_cost_estimate(actor, ce_id: int, notes: str | None = None) -> CostEstimate:
    require_capability(actor, APPROVE_COST_ESTIMATES)
    cost_estimate = get_cost_estimate(ce_id)
    _guard_decidable(cost_estimate, "approve", cost_estimate.can_be_approved())

    with atomic():
        cost_estimate.status = COST_ESTIMATE_STATUS_APPROVED
        cost_estimate.approved_by_id = actor.id
        cost_estimate.approved_at = utcnow()
        cost_estimate.approval_notes = clean_text(notes)

    logger.info(
        "CE approved id=%s ce_number=%s approved_by_id=%s",
        cost_estimate.id,
        cost_estimate.ce_number,
        actor.id,
    )
    return cost_estimate


def reject_cost_estimate(actor, ce_id: int, notes: str | None = None) -> CostEstimate:
    require_capability(actor, APPROVE_COST_ESTIMATES)
    cost_estimate = get_cost_estimate(ce_id)
    _guard_decidable(cost_estimate, "reject", cost_estimate.can_be_rejected())

    with atomic():
        cost_estimate.status = COST_ESTIMATE_STATUS_REJECTED
        cost_estimate.rejection_notes = clean_text(notes)

    logger.info(
        "CE rejected id=%s ce_number=%s rejected_by_id=%s",
        cost_estimate.id,
        cost_estimate.ce_number,
        actor.id,
    )
    return cost_estimate


def delete_cost_estimate(actor, ce_id: int) -> None:
    """Delete a draft cost estimate and hand its purchase order back to ``validated``."""
    require_capability(actor, CREATE_COST_ESTIMATES)
    cost_estimate = get_cost_estimate(ce_id)
    _guard_editable(cost_estimate, "delete")

    ce_number = cost_estimate.ce_number
    purchase_order = cost_estimate.purchase_order
    with atomic():
        db.session.delete(cost_estimate)
        if purchase_order.status == PURCHASE_ORDER_STATUS_CE_BOQ_CREATED:
            purchase_order.status = PURCHASE_ORDER_STATUS_VALIDATED

    logger.info(
        "CE deleted id=%s ce_number=%s po_id=%s po_status=%s deleted_by_id=%s",
        ce_id,
        ce_number,
        purchase_order.id,
        purchase_order.status,
        actor.id,
    )


def add_cost_estimate_item(actor, ce_id: int, fields: Mapping[str, Any]) -> CostEstimateItem:
    require_capability(actor, CREATE_COST_ESTIMATES)
    cost_estimate = get_cost_estimate(ce_id)
    _guard_editable(cost_estimate, "add item to")
    values = _clean_single_item(fields)
    _check_total_with(cost_estimate, values)

    with atomic():
        item = line_items.append_item(cost_estimate, values)

    logger.info(
        "CE item added ce_id=%s item_id=%s total=%s",
        cost_estimate.id,
        item.id,
        cost_estimate.total_amount,
    )
    return item


def update_cost_estimate_item(
    actor, ce_id: int, item_id: int, fields: Mapping[str, Any]
) -> CostEstimateItem:
    require_capability(actor, CREATE_COST_ESTIMATES)
    cost_estimate = get_cost_estimate(ce_id)
    item = _get_item(cost_estimate, item_id)
    _guard_editable(cost_estimate, "update item of")
    values = _clean_single_item(fields)
    _check_total_with(cost_estimate, values, replaced=item)

    with atomic():
        line_items.apply_item_values(item, values)
        line_items.recompute_total(cost_estimate)

    logger.info(
        "CE item updated ce_id=%s item_id=%s total=%s",
        cost_estimate.id,
        item.id,
        cost_estimate.total_amount,
    )
    return item


def remove_cost_estimate_item(actor, ce_id: int, item_id: int) -> CostEstimate:
    require_capability(actor, CREATE_COST_ESTIMATES)
    cost_estimate = get_cost_estimate(ce_id)
    item = _get_item(cost_estimate, item_id)
    _guard_editable(cost_estimate, "remove item from")
    if len(cost_estimate.items) <= 1:
        raise ValidationError({"items": "A cost estimate must keep at least one item."})

    with atomic():
        line_items.remove_item(cost_estimate, item)

    logger.info(
        "CE item removed ce_id=%s item_id=%s total=%s",
        cost_estimate.id,
        item_id,
        cost_estimate.total_amount,
    )
    return cost_estimate
