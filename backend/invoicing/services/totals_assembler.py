"""
totals_assembler.py — Invoice Totals Assembler

Runs the full derivation pipeline for one document:

  1. Normalize line items            (line_item_engine)
  2. Subtotal + per-bucket subtotals (tax_engine)
  3. Category tax breakdown          (tax_engine)
  4. Discount amount, final total    (discount_engine)
  5. Deposit, amount after deposit   (deposit_engine)
  6. Total paid, balance due         (deposit_engine)

``assemble_totals`` is a pure function of its inputs: identical inputs
always give identical ``InvoiceTotals``. ``assemble_snapshot`` extends it to
a whole ``DocumentDraft`` (change orders, progress billing, status) and
returns a frozen ``DocumentSnapshot``; on any validation error nothing is
returned, so a partially derived snapshot never escapes.
"""
from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Dict, Sequence, Tuple

from invoicing.config import PAYMENT_TERMS_DAYS
from invoicing.models.invoice_models import (
    Discount,
    DocumentDraft,
    DocumentSnapshot,
    DocumentStatus,
    InvoiceTotals,
    LineItem,
    Payment,
)
from invoicing.services.change_order_engine import (
    calculate_change_order,
    change_order_total,
    project_total,
)
from invoicing.services.deposit_engine import (
    amount_after_deposit,
    calculate_balance_due,
    calculate_deposit_amount,
    total_paid,
    validate_payment,
)
from invoicing.services.discount_engine import apply_discounts, calculate_discount_amount
from invoicing.services.exceptions import InvalidTransition, InvoiceCalculationError
from invoicing.services.line_item_engine import normalize_line_item
from invoicing.services.perf_monitor import timed
from invoicing.services.progress_billing_engine import billing_summary, recalculate_phases
from invoicing.services.tax_engine import (
    RatesInput,
    calculate_subtotal,
    calculate_tax_breakdown,
    category_totals,
    validate_tax_rates,
)

logger = logging.getLogger("invoicing-assembler")

# Money figures compared by verify_snapshot / diff_totals.
_TOTALS_FIELDS = (
    "subtotal",
    "tax_amount",
    "discount_amount",
    "total",
    "deposit_percentage",
    "deposit_amount",
    "amount_after_deposit",
    "total_paid",
    "balance_due",
)


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------

@timed
def assemble_totals(
    line_items: Sequence[LineItem],
    tax_rates: RatesInput,
    discounts: Sequence[Discount] = (),
    deposit_percentage: float = 0.0,
    payments: Sequence[Payment] = (),
) -> InvoiceTotals:
    """
    Derive every money figure of a document from its raw inputs.

    Args:
        line_items:          Items as edited; totals are re-derived.
        tax_rates:           Four category bucket rates (percent).
        discounts:           Independent discount rules.
        deposit_percentage:  Deposit requirement (percent of total).
        payments:            Recorded payments.

    Returns:
        InvoiceTotals. ``total`` may be negative when discounts exceed the
        taxed subtotal.
    """
    items = [normalize_line_item(i) for i in line_items]
    for payment in payments:
        validate_payment(payment)

    subtotal = calculate_subtotal(items)
    breakdown = calculate_tax_breakdown(items, tax_rates)
    discount_amount = calculate_discount_amount(subtotal, breakdown.total_tax, discounts, items)
    total = apply_discounts(subtotal, breakdown.total_tax, discount_amount)

    deposit_amount = calculate_deposit_amount(total, deposit_percentage)
    totals = InvoiceTotals(
        subtotal=subtotal,
        category_subtotals=category_totals(items),
        tax_breakdown=breakdown,
        tax_amount=breakdown.total_tax,
        discount_amount=discount_amount,
        total=total,
        deposit_percentage=float(deposit_percentage),
        deposit_amount=deposit_amount,
        amount_after_deposit=amount_after_deposit(total, deposit_amount),
        total_paid=total_paid(payments),
        balance_due=calculate_balance_due(total, payments),
    )
    if total < 0:
        logger.info("document total is negative", extra={"total": total})
    return totals


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

def derive_status(
    draft: DocumentDraft,
    totals: InvoiceTotals,
    today: date,
) -> DocumentStatus:
    """
    Status implied by payments and dates.

    invoice with payments          → paid (balance ≤ 0) | partial_paid
    sent invoice past due, unpaid  → overdue
    sent quote past expiry         → expired
    anything else                  → unchanged
    """
    if draft.type == "invoice":
        if draft.payments and draft.status != "converted":
            return "paid" if totals.balance_due <= 0 else "partial_paid"
        if (
            draft.status == "sent"
            and draft.due_date is not None
            and draft.due_date < today
            and totals.balance_due > 0
        ):
            return "overdue"
        return draft.status

    if draft.status == "sent" and draft.expiry_date is not None and draft.expiry_date < today:
        return "expired"
    return draft.status


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

def assemble_snapshot(draft: DocumentDraft, today: date) -> DocumentSnapshot:
    """
    Freeze ``draft`` into a complete, internally consistent snapshot.

    Change orders are re-derived with the document's tax rates; progress
    billing amounts follow the document (base) total. Stored phases are
    re-derived even when progress billing is switched off.

    Raises:
        InvoiceCalculationError: any validation failure. No snapshot is
        produced in that case.
    """
    try:
        rates = validate_tax_rates(draft.tax_rates)
        totals = assemble_totals(
            draft.line_items,
            rates,
            draft.discounts,
            draft.deposit_percentage,
            draft.payments,
        )
        change_orders = tuple(
            calculate_change_order(co, rates) for co in draft.change_orders
        )
        phases = tuple(recalculate_phases(draft.progress_billing, totals.total))
        summary = None
        if draft.is_progress_billing:
            summary = billing_summary(phases, totals.total, today)
        status = derive_status(draft, totals, today)
    except InvoiceCalculationError as exc:
        logger.warning(
            "snapshot rejected",
            extra={"document_id": draft.id, "code": exc.code, "field": exc.field},
        )
        raise

    snapshot = DocumentSnapshot(
        id=draft.id,
        type=draft.type,
        number=draft.number,
        status=status,
        date=draft.date,
        due_date=draft.due_date,
        expiry_date=draft.expiry_date,
        project_title=draft.project_title,
        line_items=tuple(normalize_line_item(i) for i in draft.line_items),
        tax_rates=rates,
        discounts=tuple(draft.discounts),
        deposit_percentage=totals.deposit_percentage,
        payments=tuple(draft.payments),
        change_orders=change_orders,
        is_progress_billing=draft.is_progress_billing,
        progress_billing=phases,
        billing_summary=summary,
        original_quote_id=draft.original_quote_id,
        converted_invoice_id=draft.converted_invoice_id,
        terms=draft.terms,
        notes=draft.notes,
        totals=totals,
        change_order_total=change_order_total(change_orders),
        project_total=project_total(totals.total, change_orders),
    )
    logger.debug(
        "snapshot assembled",
        extra={"document_id": snapshot.id, "total": totals.total, "status": status},
    )
    return snapshot


def reassemble_totals(snapshot: DocumentSnapshot) -> InvoiceTotals:
    """Recompute totals from the snapshot's own stored inputs."""
    return assemble_totals(
        snapshot.line_items,
        snapshot.tax_rates,
        snapshot.discounts,
        snapshot.deposit_percentage,
        snapshot.payments,
    )


def diff_totals(a: InvoiceTotals, b: InvoiceTotals) -> Dict[str, Tuple[float, float]]:
    """Figures that differ between two totals results: {field: (a, b)}."""
    diff: Dict[str, Tuple[float, float]] = {}
    for name in _TOTALS_FIELDS:
        left, right = getattr(a, name), getattr(b, name)
        if left != right:
            diff[name] = (left, right)
    if a.tax_breakdown != b.tax_breakdown:
        for name, left in a.tax_breakdown.model_dump().items():
            right = getattr(b.tax_breakdown, name)
            if left != right and name != "total_tax":
                diff[name] = (left, right)
    if a.category_subtotals != b.category_subtotals:
        for name, left in a.category_subtotals.model_dump().items():
            right = getattr(b.category_subtotals, name)
            if left != right:
                diff[f"{name}_subtotal"] = (left, right)
    return diff


def verify_snapshot(snapshot: DocumentSnapshot) -> bool:
    """True when the stored totals match a fresh recomputation exactly."""
    diff = diff_totals(snapshot.totals, reassemble_totals(snapshot))
    if diff:
        logger.warning(
            "snapshot totals drifted",
            extra={"document_id": snapshot.id, "fields": sorted(diff)},
        )
        return False
    return True


# ---------------------------------------------------------------------------
# Quote conversion
# ---------------------------------------------------------------------------

def convert_quote_to_invoice(
    quote: DocumentSnapshot,
    number: str,
    today: date,
) -> Tuple[DocumentDraft, DocumentSnapshot]:
    """
    Start an invoice from an accepted (or any unconverted) quote.

    Returns:
        (invoice_draft, converted_quote). The invoice is a fresh draft dated
        ``today`` and due after the standard payment terms; the quote is
        re-stamped ``converted`` and linked to the new invoice.
    """
    if quote.type != "quote":
        raise InvalidTransition(f"Document {quote.number}", quote.type, "invoice")
    if quote.status == "converted" or quote.converted_invoice_id:
        raise InvalidTransition(f"Quote {quote.number}", quote.status, "converted")

    invoice = DocumentDraft(
        type="invoice",
        number=number,
        status="draft",
        date=today,
        due_date=today + timedelta(days=PAYMENT_TERMS_DAYS),
        expiry_date=None,
        project_title=quote.project_title,
        line_items=list(quote.line_items),
        tax_rates=quote.tax_rates,
        discounts=list(quote.discounts),
        deposit_percentage=quote.deposit_percentage,
        payments=list(quote.payments),
        change_orders=list(quote.change_orders),
        is_progress_billing=quote.is_progress_billing,
        progress_billing=list(quote.progress_billing),
        original_quote_id=quote.id,
        terms=quote.terms,
        notes=quote.notes,
    )
    converted = quote.model_copy(update={
        "status": "converted",
        "converted_invoice_id": invoice.id,
    })
    logger.info(
        "quote converted",
        extra={"document_id": quote.id, "invoice_id": invoice.id},
    )
    return invoice, converted
