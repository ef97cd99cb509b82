"""
Cost estimate line items: input validation, pricing and total aggregation.

``total_price`` is always ``quantity * unit_price`` computed here, never taken
from input, and ``CostEstimate.total_amount`` is always the sum of its items.
Every function that changes the item set finishes by calling
``recompute_total`` so the new total is flushed in the same transaction as
the item rows.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Mapping

from extensions import db
from models import CostEstimate, CostEstimateItem
from workflow.inputs import amount_error, clean_text, is_blank, parse_decimal, quantize_amount

ZERO = Decimal("0.00")

DESCRIPTION_MAX_LENGTH = 255
UNIT_MAX_LENGTH = 50
ITEM_CODE_MAX_LENGTH = 50

# NUMERIC precision of the item and estimate amount columns (scale is always 2).
QUANTITY_PRECISION = 10
UNIT_PRICE_PRECISION = 12
TOTAL_PRECISION = 15


def clean_item(raw: Any, key: str, errors: dict[str, str]) -> dict | None:
    """Validate one item mapping; problems are added to ``errors`` under ``key.<field>``."""
    if not isinstance(raw, Mapping):
        errors[key] = "Item must be a mapping of fields."
        return None

    error_count = len(errors)

    description = clean_text(raw.get("description"))
    if not description:
        errors[f"{key}.description"] = "Item description is required."
    elif len(description) > DESCRIPTION_MAX_LENGTH:
        errors[f"{key}.description"] = "Item description cannot exceed 255 characters."

    unit = clean_text(raw.get("unit"))
    if not unit:
        errors[f"{key}.unit"] = "Unit is required."
    elif len(unit) > UNIT_MAX_LENGTH:
        errors[f"{key}.unit"] = "Unit cannot exceed 50 characters."

    item_code = clean_text(raw.get("item_code"))
    if item_code and len(item_code) > ITEM_CODE_MAX_LENGTH:
        errors[f"{key}.item_code"] = "Item code cannot exceed 50 characters."

    quantity = None
    raw_quantity = raw.get("quantity")
    if is_blank(raw_quantity):
        errors[f"{key}.quantity"] = "Quantity is required."
    else:
        quantity = parse_decimal(raw_quantity)
        if quantity is None:
            errors[f"{key}.quantity"] = "Quantity must be a number."
        elif quantity <= 0:
            errors[f"{key}.quantity"] = "Quantity must be greater than 0."
        else:
            message = amount_error(quantity, "Quantity", QUANTITY_PRECISION)
            if message:
                errors[f"{key}.quantity"] = message

    unit_price = None
    raw_unit_price = raw.get("unit_price")
    if is_blank(raw_unit_price):
        errors[f"{key}.unit_price"] = "Unit price is required."
    else:
        unit_price = parse_decimal(raw_unit_price)
        if unit_price is None:
            errors[f"{key}.unit_price"] = "Unit price must be a number."
        elif unit_price < 0:
            errors[f"{key}.unit_price"] = "Unit price cannot be negative."
        else:
            message = amount_error(unit_price, "Unit price", UNIT_PRICE_PRECISION)
            if message:
                errors[f"{key}.unit_price"] = message

    if len(errors) != error_count:
        return None

    quantity = quantize_amount(quantity)
    unit_price = quantize_amount(unit_price)
    message = amount_error(
        line_total(quantity, unit_price), "Quantity times unit price", TOTAL_PRECISION
    )
    if message:
        errors[f"{key}.total_price"] = message
        return None

    return {
        "item_code": item_code,
        "description": description,
        "unit": unit,
        "quantity": quantity,
        "unit_price": unit_price,
        "notes": clean_text(raw.get("notes")),
    }


def clean_items(raw_items: Any, errors: dict[str, str]) -> list[dict]:
    """Validate the full item list of a cost estimate (at least one item)."""
    if isinstance(raw_items, (str, bytes, Mapping)) or not isinstance(raw_items, Iterable):
        errors["items"] = "At least one item is required."
        return []

    raw_items = list(raw_items)
    if not raw_items:
        errors["items"] = "At least one item is required."
        return []

    cleaned = []
    for index, raw in enumerate(raw_items):
        values = clean_item(raw, f"items.{index}", errors)
        if values is not None:
            cleaned.append(values)

    if len(cleaned) == len(raw_items):
        message = total_amount_error(
            line_total(values["quantity"], values["unit_price"]) for values in cleaned
        )
        if message:
            errors["items"] = message
    return cleaned


def line_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
    return quantize_amount(Decimal(quantity) * Decimal(unit_price))


def total_amount_error(line_totals: Iterable[Decimal]) -> str | None:
    return amount_error(sum(line_totals, ZERO), "Total amount", TOTAL_PRECISION)


def price_item(item: CostEstimateItem) -> Decimal:
    item.total_price = line_total(item.quantity, item.unit_price)
    return item.total_price


def build_item(values: Mapping, sort_order: int) -> CostEstimateItem:
    item = CostEstimateItem(sort_order=sort_order, **values)
    price_item(item)
    return item


def apply_item_values(item: CostEstimateItem, values: Mapping) -> CostEstimateItem:
    for field, value in values.items():
        setattr(item, field, value)
    price_item(item)
    return item


def recompute_total(cost_estimate: CostEstimate) -> Decimal:
    """Write the exact sum of the current items onto the cost estimate and flush."""
    total = sum((Decimal(item.total_price) for item in cost_estimate.items), ZERO)
    cost_estimate.total_amount = quantize_amount(total)
    db.session.flush()
    return cost_estimate.total_amount


def replace_items(cost_estimate: CostEstimate, cleaned_items: Iterable[Mapping]) -> Decimal:
    """Delete every existing item, recreate from ``cleaned_items`` in list order."""
    cost_estimate.items.clear()
    db.session.flush()
    for index, values in enumerate(cleaned_items):
        cost_estimate.items.append(build_item(values, index))
    return recompute_total(cost_estimate)


def append_item(cost_estimate: CostEstimate, values: Mapping) -> CostEstimateItem:
    next_order = max((item.sort_order for item in cost_estimate.items), default=-1) + 1
    item = build_item(values, next_order)
    cost_estimate.items.append(item)
    recompute_total(cost_estimate)
    return item


def remove_item(cost_estimate: CostEstimate, item: CostEstimateItem) -> Decimal:
    cost_estimate.items.remove(item)
    db.session.flush()
    return recompute_total(cost_estimate)
