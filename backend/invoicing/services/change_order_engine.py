"""
change_order_engine.py — Change Order Aggregator

Each change order runs its own line item → totals pipeline over its own
items, using the PARENT document's category tax rates:

    subtotal   = Σ item.total
    tax_amount = category tax breakdown total
    total      = subtotal + tax_amount          (negative for a scope reduction)

Change order line items may carry a negative quantity (a credit line);
rates stay non-negative.

Lifecycle:  draft → approved | rejected   (both terminal)

Rollup: only APPROVED change orders contribute to the parent's change order
total, which is added to the document total to give the all-in project
total. Draft and rejected change orders are reported separately.
"""
from __future__ import annotations

import logging
import math
from datetime import date
from typing import Dict, Iterable, Optional, Sequence

from invoicing.models.invoice_models import ChangeOrder, ChangeOrderStatus, LineItem
from invoicing.services.exceptions import InvalidTransition
from invoicing.services.line_item_engine import normalize_line_item
from invoicing.services.tax_engine import RatesInput, calculate_subtotal, calculate_tax_breakdown

logger = logging.getLogger("invoicing-change-orders")

# Allowed lifecycle moves: {current: {targets}}
_TRANSITIONS: Dict[str, set] = {
    "draft":    {"approved", "rejected"},
    "approved": set(),
    "rejected": set(),
}


def _require_transition(change_order: ChangeOrder, target: ChangeOrderStatus) -> None:
    if target not in _TRANSITIONS[change_order.status]:
        logger.warning(
            "change order transition rejected",
            extra={"change_order": change_order.number, "from": change_order.status, "to": target},
        )
        raise InvalidTransition(f"Change order {change_order.number}", change_order.status, target)


def calculate_change_order(change_order: ChangeOrder, rates: RatesInput) -> ChangeOrder:
    """Re-derive items, subtotal, tax and total with the parent's tax rates."""
    items = tuple(normalize_line_item(i, allow_credit=True) for i in change_order.line_items)
    subtotal = calculate_subtotal(items)
    tax_amount = calculate_tax_breakdown(items, rates).total_tax
    total = round(subtotal + tax_amount, 2)
    return change_order.model_copy(update={
        "line_items": items,
        "subtotal": subtotal,
        "tax_amount": tax_amount,
        "total": total,
    })


def create_change_order(
    number: str,
    order_date: date,
    line_items: Sequence[LineItem],
    rates: RatesInput,
    description: str = "",
    reason: Optional[str] = None,
) -> ChangeOrder:
    """New draft change order with its totals already derived."""
    draft = ChangeOrder(
        number=number,
        date=order_date,
        description=description,
        reason=reason,
        line_items=tuple(line_items),
    )
    return calculate_change_order(draft, rates)


def update_change_order_items(
    change_order: ChangeOrder,
    line_items: Sequence[LineItem],
    rates: RatesInput,
) -> ChangeOrder:
    """Replace the items of a DRAFT change order and re-derive its totals."""
    if change_order.status != "draft":
        raise InvalidTransition(f"Change order {change_order.number}", change_order.status, "edited")
    return calculate_change_order(
        change_order.model_copy(update={"line_items": tuple(line_items)}),
        rates,
    )


def approve_change_order(
    change_order: ChangeOrder,
    approved_by: Optional[str] = None,
    approved_date: Optional[date] = None,
) -> ChangeOrder:
    _require_transition(change_order, "approved")
    logger.info("change order approved", extra={"change_order": change_order.number})
    return change_order.model_copy(update={
        "status": "approved",
        "approved_by": approved_by,
        "approved_date": approved_date,
    })


def reject_change_order(change_order: ChangeOrder) -> ChangeOrder:
    _require_transition(change_order, "rejected")
    logger.info("change order rejected", extra={"change_order": change_order.number})
    return change_order.model_copy(update={"status": "rejected"})


def change_order_kind(change_order: ChangeOrder) -> str:
    """'additive' for a scope increase (or no change), 'deductive' for a credit."""
    return "additive" if change_order.total >= 0 else "deductive"


def change_order_total(change_orders: Iterable[ChangeOrder]) -> float:
    """Σ total of APPROVED change orders, rounded to cents; may be negative."""
    return round(math.fsum(co.total for co in change_orders if co.status == "approved"), 2)


def project_total(document_total: float, change_orders: Iterable[ChangeOrder]) -> float:
    """All-in project value: document total plus the approved change order total."""
    return round(document_total + change_order_total(change_orders), 2)


def change_order_summary(change_orders: Iterable[ChangeOrder]) -> Dict[str, float]:
    """Counts and totals per lifecycle state."""
    orders = list(change_orders)
    summary: Dict[str, float] = {}
    for status in _TRANSITIONS:
        in_state = [co for co in orders if co.status == status]
        summary[f"{status}_count"] = len(in_state)
        summary[f"{status}_total"] = round(math.fsum(co.total for co in in_state), 2)
    return summary
