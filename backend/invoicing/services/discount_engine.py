"""
discount_engine.py — Discount Engine

Evaluates an ordered list of independent discount rules. Each rule is
computed against the ORIGINAL (undiscounted) base; rules never compound or
reduce each other's base:

  fixed                           → value
  percentage, applies_to=subtotal → subtotal × value/100
  percentage, applies_to=total    → (subtotal + total_tax) × value/100
  percentage, applies_to=category → (sum of item totals in that category) × value/100
  fixed,      applies_to=category → value (flat; no category scoping)

discount_amount is the sum of all rule amounts. The final total
(subtotal + total_tax − discount_amount) is NOT floored at zero: a negative
result is a valid output the presentation layer may flag.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Sequence

from invoicing.config import require_non_negative, require_percent
from invoicing.models.invoice_models import Discount, LineItem
from invoicing.services.exceptions import InvoiceCalculationError, MissingBase
from invoicing.services.tax_engine import category_subtotal

logger = logging.getLogger("invoicing-discounts")


def validate_discount(discount: Discount) -> Discount:
    """
    Check a single rule.

    Raises:
        InvalidValue: negative value.
        InvalidRate:  percentage value outside [0, 100].
        MissingBase:  applies_to=category without a category.
    """
    require_non_negative(discount.value, field="value")
    if discount.type == "percentage":
        require_percent(discount.value, field="value")
    if discount.applies_to == "category" and discount.category is None:
        raise MissingBase("category discount has no category", field="category")
    return discount


def discount_base(
    discount: Discount,
    subtotal: float,
    total_tax: float,
    line_items: Sequence[LineItem],
) -> float:
    """The undiscounted figure a percentage rule is computed against."""
    if discount.applies_to == "subtotal":
        return subtotal
    if discount.applies_to == "total":
        return subtotal + total_tax
    return category_subtotal(line_items, discount.category)


def discount_rule_amount(
    discount: Discount,
    subtotal: float,
    total_tax: float,
    line_items: Sequence[LineItem],
) -> float:
    """Amount of one rule, unrounded."""
    validate_discount(discount)
    if discount.type == "fixed":
        return float(discount.value)
    base = discount_base(discount, subtotal, total_tax, line_items)
    return base * discount.value / 100.0


def discount_breakdown(
    subtotal: float,
    total_tax: float,
    discounts: Iterable[Discount],
    line_items: Sequence[LineItem] = (),
) -> List[Dict[str, object]]:
    """Per-rule amounts (rounded to cents) in the order the rules were listed."""
    rows: List[Dict[str, object]] = []
    for idx, discount in enumerate(discounts):
        amount = discount_rule_amount(discount, subtotal, total_tax, line_items)
        rows.append({
            "line": idx + 1,
            "description": discount.description,
            "type": discount.type,
            "applies_to": discount.applies_to,
            "category": discount.category.value if discount.category else None,
            "value": discount.value,
            "amount": round(amount, 2),
        })
    return rows


def calculate_discount_amount(
    subtotal: float,
    total_tax: float,
    discounts: Iterable[Discount],
    line_items: Sequence[LineItem] = (),
) -> float:
    """
    Total discount across all rules, rounded to cents.

    Uses ``math.fsum`` so the result does not depend on rule order.
    """
    rules = list(discounts)
    try:
        amounts = [
            discount_rule_amount(d, subtotal, total_tax, line_items)
            for d in rules
        ]
    except InvoiceCalculationError as exc:
        logger.warning("discount rule rejected", extra={"code": exc.code, "field": exc.field})
        raise
    discount_amount = round(math.fsum(amounts), 2)
    logger.debug("discounts evaluated", extra={"rules": len(rules), "discount_amount": discount_amount})
    return discount_amount


def apply_discounts(subtotal: float, total_tax: float, discount_amount: float) -> float:
    """Final total; may be negative."""
    return round(subtotal + total_tax - discount_amount, 2)
