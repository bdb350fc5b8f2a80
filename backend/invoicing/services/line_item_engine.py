"""
line_item_engine.py — Line Item Derivation Unit

Keeps the dependent triad {cost, markup %, rate} and {quantity, total}
consistent on every edit. Each edit performs exactly one downstream update:

  - cost / markup edit  → rate = cost × (1 + markup/100); total = quantity × rate
  - rate edit           → cost back-derived only when markup > 0; total = quantity × rate
  - quantity edit       → total = quantity × rate (cost / markup / rate untouched)
  - category edit       → markup and informational tax_rate reset to the
                          category defaults from the supplied BusinessConfig

Items are frozen pydantic models; every function returns a new LineItem.
``total`` and derived ``rate`` / ``cost`` are not rounded, so
``total == quantity × rate`` holds exactly; rounding happens in the aggregates.

Also covers the markup / margin helpers used by the pricing UI.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Dict

from invoicing.config import (
    default_markup_for,
    default_tax_rate_for,
    require_non_negative,
    require_percent,
)
from invoicing.models.invoice_models import BusinessConfig, Category, LineItem
from invoicing.services.exceptions import (
    InvalidQuantity,
    InvalidRate,
    InvalidValue,
    InvoiceCalculationError,
)

logger = logging.getLogger("invoicing-line-items")

# Fields a caller may edit through ``apply_edit`` without a derivation rule.
_PLAIN_FIELDS = ("description", "unit", "notes")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_quantity(quantity: float, allow_credit: bool = False) -> float:
    """
    Validate a quantity.

    ``allow_credit`` permits negative quantities; change orders use it to
    express a scope reduction.
    """
    qty = float(quantity)
    if not math.isfinite(qty) or (qty < 0 and not allow_credit):
        raise InvalidQuantity(quantity)
    return qty


def validate_markup(markup: float, field: str = "markup") -> float:
    return require_percent(markup, field=field)


def validate_rate(rate: float) -> float:
    return require_non_negative(rate, field="rate")


def validate_cost(cost: float) -> float:
    return require_non_negative(cost, field="cost")


# ---------------------------------------------------------------------------
# Pricing helpers
# ---------------------------------------------------------------------------

def line_total(quantity: float, rate: float) -> float:
    return quantity * rate


def selling_price(cost: float, markup: float) -> float:
    """Unit rate for ``cost`` marked up by ``markup`` percent."""
    return cost * (1.0 + markup / 100.0)


def markup_amount(cost: float, markup: float) -> float:
    """Markup in currency terms, rounded to cents."""
    return round(cost * (markup / 100.0), 2)


def margin_from_markup(markup: float) -> float:
    """
    Convert a markup percent into the equivalent gross margin percent.

    25 % markup → 20 % margin.
    """
    m = validate_markup(markup)
    return round(m / (100.0 + m) * 100.0, 2)


def markup_from_margin(margin: float) -> float:
    """
    Convert a gross margin percent into the markup percent that yields it.

    20 % margin → 25 % markup. A margin of 100 % or more has no finite markup.
    """
    g = float(margin)
    if not math.isfinite(g) or g < 0 or g >= 100.0:
        raise InvalidRate(margin, field="margin")
    return round(g / (100.0 - g) * 100.0, 2)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def new_line_item(
    config: BusinessConfig,
    category: Category = Category.MATERIAL,
    **fields: Any,
) -> LineItem:
    """
    Blank line item for ``category``: quantity 1, zero cost / rate / total,
    category default markup and the category tax rate (informational).
    """
    category = Category(category)
    defaults: Dict[str, Any] = {
        "category": category,
        "quantity": 1.0,
        "unit": "each",
        "cost": 0.0,
        "markup": default_markup_for(category, config),
        "rate": 0.0,
        "tax_rate": default_tax_rate_for(category, config),
        "total": 0.0,
    }
    defaults.update(fields)
    return normalize_line_item(LineItem(**defaults))


def normalize_line_item(item: LineItem, allow_credit: bool = False) -> LineItem:
    """
    Validate an item received from the editing layer and re-derive its total.

    Raises:
        InvalidQuantity: negative quantity (unless ``allow_credit``).
        InvalidValue:    negative rate or cost.
        InvalidRate:     markup outside [0, 100].
    """
    qty = validate_quantity(item.quantity, allow_credit=allow_credit)
    rate = validate_rate(item.rate)
    if item.cost is not None:
        validate_cost(item.cost)
    if item.markup is not None:
        validate_markup(item.markup)
    total = line_total(qty, rate)
    if qty == item.quantity and rate == item.rate and total == item.total:
        return item
    return item.model_copy(update={"quantity": qty, "rate": rate, "total": total})


# ---------------------------------------------------------------------------
# Edit rules
# ---------------------------------------------------------------------------

def set_cost(item: LineItem, cost: float) -> LineItem:
    new_cost = validate_cost(cost)
    markup = item.markup or 0.0
    rate = selling_price(new_cost, markup)
    return item.model_copy(update={
        "cost": new_cost,
        "rate": rate,
        "total": line_total(item.quantity, rate),
    })


def set_markup(item: LineItem, markup: float) -> LineItem:
    new_markup = validate_markup(markup)
    cost = item.cost or 0.0
    rate = selling_price(cost, new_markup)
    return item.model_copy(update={
        "markup": new_markup,
        "rate": rate,
        "total": line_total(item.quantity, rate),
    })


def set_rate(item: LineItem, rate: float) -> LineItem:
    new_rate = validate_rate(rate)
    update: Dict[str, Any] = {
        "rate": new_rate,
        "total": line_total(item.quantity, new_rate),
    }
    if item.markup and item.markup > 0:
        update["cost"] = new_rate / (1.0 + item.markup / 100.0)
    return item.model_copy(update=update)


def set_quantity(item: LineItem, quantity: float, allow_credit: bool = False) -> LineItem:
    qty = validate_quantity(quantity, allow_credit=allow_credit)
    return item.model_copy(update={
        "quantity": qty,
        "total": line_total(qty, item.rate),
    })


def set_category(item: LineItem, category: Category, config: BusinessConfig) -> LineItem:
    """
    Switch category. Markup resets to the category default and the item's
    informational tax_rate to the bucket rate; rate and total are untouched
    until the next cost / markup / rate edit.
    """
    new_category = Category(category)
    return item.model_copy(update={
        "category": new_category,
        "markup": default_markup_for(new_category, config),
        "tax_rate": default_tax_rate_for(new_category, config),
    })


def apply_edit(
    item: LineItem,
    field: str,
    value: Any,
    config: BusinessConfig,
    allow_credit: bool = False,
) -> LineItem:
    """
    Apply a single field edit coming from the editing layer.

    Args:
        item:         Current line item (left unchanged).
        field:        One of cost, markup, rate, quantity, category,
                      description, unit, notes.
        value:        New value for ``field``.
        config:       Business defaults used by category edits.
        allow_credit: Permit negative quantities (change order credits).

    Returns:
        The updated LineItem.
    """
    try:
        if field == "cost":
            updated = set_cost(item, value)
        elif field == "markup":
            updated = set_markup(item, value)
        elif field == "rate":
            updated = set_rate(item, value)
        elif field == "quantity":
            updated = set_quantity(item, value, allow_credit=allow_credit)
        elif field == "category":
            try:
                category = Category(value)
            except ValueError:
                raise InvalidValue(value, field="category", reason="is not a known category")
            updated = set_category(item, category, config)
        elif field in _PLAIN_FIELDS:
            updated = item.model_copy(update={field: value})
        else:
            raise InvalidValue(value, field=field, reason="is not an editable line item field")
    except InvoiceCalculationError as exc:
        logger.warning(
            "line item edit rejected",
            extra={"item_id": item.id, "field": field, "code": exc.code},
        )
        raise

    logger.debug("line item derived", extra={"item_id": updated.id, "field": field})
    return updated
