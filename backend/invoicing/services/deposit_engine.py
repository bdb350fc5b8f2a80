"""
deposit_engine.py — Deposit & Balance Calculator

  deposit_amount       = total × deposit_percentage / 100
  balance_due          = total − Σ payment.amount
  amount_after_deposit = total − deposit_amount    (presentation only)

The deposit percentage is the source of truth; the amount is a view
recomputed at assembly time and never stored independently. A deposit does
not reduce ``balance_due`` until it is recorded as a payment.

Also covers payment recording and the paid / partial_paid status derived
from recorded payments.
"""
from __future__ import annotations

import logging
import math
from typing import Iterable, List

from invoicing.config import require_percent
from invoicing.models.invoice_models import Payment, PaymentStatus
from invoicing.services.exceptions import InvalidValue

logger = logging.getLogger("invoicing-payments")


def calculate_deposit_amount(total: float, deposit_percentage: float) -> float:
    pct = require_percent(deposit_percentage, field="deposit_percentage")
    return round(total * pct / 100.0, 2)


def amount_after_deposit(total: float, deposit_amount: float) -> float:
    return round(total - deposit_amount, 2)


def total_paid(payments: Iterable[Payment]) -> float:
    return round(math.fsum(p.amount for p in payments), 2)


def calculate_balance_due(total: float, payments: Iterable[Payment]) -> float:
    """Outstanding balance; independent of any deposit not yet paid."""
    return round(total - math.fsum(p.amount for p in payments), 2)


def validate_payment(payment: Payment) -> Payment:
    amount = float(payment.amount)
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidValue(payment.amount, field="amount", reason="must be greater than zero")
    return payment


def record_payment(payments: Iterable[Payment], payment: Payment) -> List[Payment]:
    """Return a new payment list with ``payment`` appended."""
    try:
        validate_payment(payment)
    except InvalidValue:
        logger.warning("payment rejected", extra={"payment_id": payment.id})
        raise
    return [*payments, payment]


def payment_progress_pct(total: float, payments: Iterable[Payment]) -> float:
    """Share of ``total`` already paid, in percent (0 when total ≤ 0)."""
    if total <= 0:
        return 0.0
    return round(math.fsum(p.amount for p in payments) / total * 100.0, 2)


def payment_status(total: float, payments: Iterable[Payment]) -> PaymentStatus:
    """
    unpaid       — no payments recorded
    partial_paid — payments recorded, balance still positive
    paid         — balance at or below zero
    """
    recorded = list(payments)
    if not recorded:
        return "unpaid"
    if calculate_balance_due(total, recorded) > 0:
        return "partial_paid"
    return "paid"
