"""
progress_billing_engine.py — Progress Billing Phase Tracker

Splits the document total into percentage-based billing phases:

    phase.amount = document_total × phase.percentage / 100

Invariant: the phase percentages of one document never sum above 100 %.
Violations are rejected (PhaseOverflow) when a phase is added or edited.

Lifecycle:  pending → billed → paid
Display status adds ``overdue`` when the due date has passed and the phase
is not yet paid.
"""
from __future__ import annotations

import logging
import math
from datetime import date
from typing import Iterable, List, Optional, Sequence

from invoicing.config import MAX_PERCENT
from invoicing.models.invoice_models import (
    BillingSummary,
    PhaseDisplayStatus,
    ProgressBillingPhase,
)
from invoicing.services.exceptions import (
    InvalidRate,
    InvalidTransition,
    InvalidValue,
    PhaseOverflow,
)

logger = logging.getLogger("invoicing-progress-billing")

# Float slack when comparing a percentage sum against 100 %.
_PERCENT_EPS: float = 1e-9


def phase_amount(document_total: float, percentage: float) -> float:
    return round(document_total * percentage / 100.0, 2)


def validate_phase_percentage(percentage: float) -> float:
    """A phase must claim a positive, finite share; the 100 % cap is checked on the schedule."""
    pct = float(percentage)
    if not math.isfinite(pct) or pct <= 0:
        raise InvalidRate(percentage, field="percentage")
    return pct


def allocated_percentage(phases: Iterable[ProgressBillingPhase]) -> float:
    return math.fsum(p.percentage for p in phases)


def _require_capacity(total_percentage: float) -> None:
    if total_percentage > MAX_PERCENT + _PERCENT_EPS:
        logger.warning("progress billing overflow", extra={"total_percentage": total_percentage})
        raise PhaseOverflow(total_percentage)


def _index_of(phases: Sequence[ProgressBillingPhase], phase_id: str) -> int:
    for idx, phase in enumerate(phases):
        if phase.id == phase_id:
            return idx
    raise InvalidValue(phase_id, field="phase_id", reason="does not match any billing phase")


def add_phase(
    phases: Sequence[ProgressBillingPhase],
    phase: ProgressBillingPhase,
    document_total: float,
) -> List[ProgressBillingPhase]:
    """Append ``phase`` (amount derived from ``document_total``)."""
    pct = validate_phase_percentage(phase.percentage)
    _require_capacity(allocated_percentage(phases) + pct)
    added = phase.model_copy(update={"percentage": pct, "amount": phase_amount(document_total, pct)})
    return [*phases, added]


def update_phase_percentage(
    phases: Sequence[ProgressBillingPhase],
    phase_id: str,
    percentage: float,
    document_total: float,
) -> List[ProgressBillingPhase]:
    idx = _index_of(phases, phase_id)
    pct = validate_phase_percentage(percentage)
    others = [p for i, p in enumerate(phases) if i != idx]
    _require_capacity(allocated_percentage(others) + pct)

    updated = list(phases)
    updated[idx] = phases[idx].model_copy(update={
        "percentage": pct,
        "amount": phase_amount(document_total, pct),
    })
    return updated


def remove_phase(phases: Sequence[ProgressBillingPhase], phase_id: str) -> List[ProgressBillingPhase]:
    idx = _index_of(phases, phase_id)
    return [p for i, p in enumerate(phases) if i != idx]


def recalculate_phases(
    phases: Sequence[ProgressBillingPhase],
    document_total: float,
) -> List[ProgressBillingPhase]:
    """
    Re-derive every phase amount from ``document_total``.

    Called whenever the document total changes; also re-checks the 100 %
    invariant for phases received from outside the engine.
    """
    for phase in phases:
        validate_phase_percentage(phase.percentage)
    _require_capacity(allocated_percentage(phases))
    return [
        p.model_copy(update={"amount": phase_amount(document_total, p.percentage)})
        for p in phases
    ]


def mark_billed(
    phase: ProgressBillingPhase,
    billed_date: date,
    invoice_id: Optional[str] = None,
) -> ProgressBillingPhase:
    if phase.status != "pending":
        raise InvalidTransition(f"Billing phase '{phase.phase}'", phase.status, "billed")
    return phase.model_copy(update={
        "status": "billed",
        "billed_date": billed_date,
        "invoice_id": invoice_id or phase.invoice_id,
    })


def mark_paid(phase: ProgressBillingPhase, paid_date: date) -> ProgressBillingPhase:
    if phase.status != "billed":
        raise InvalidTransition(f"Billing phase '{phase.phase}'", phase.status, "paid")
    return phase.model_copy(update={"status": "paid", "paid_date": paid_date})


def effective_status(phase: ProgressBillingPhase, today: date) -> PhaseDisplayStatus:
    """Stored status, or ``overdue`` when past due and not yet paid."""
    if phase.status != "paid" and phase.due_date is not None and phase.due_date < today:
        return "overdue"
    return phase.status


def billing_summary(
    phases: Sequence[ProgressBillingPhase],
    document_total: float,
    today: date,
) -> BillingSummary:
    """Allocation and collection figures across all phases."""
    allocated = allocated_percentage(phases)
    scheduled = math.fsum(phase_amount(document_total, p.percentage) for p in phases)
    billed = math.fsum(p.amount for p in phases if p.status == "billed")
    paid = math.fsum(p.amount for p in phases if p.status == "paid")
    return BillingSummary(
        allocated_percentage=round(allocated, 4),
        remaining_percentage=round(max(MAX_PERCENT - allocated, 0.0), 4),
        scheduled_amount=round(scheduled, 2),
        billed_amount=round(billed, 2),
        paid_amount=round(paid, 2),
        outstanding_amount=round(scheduled - paid, 2),
        overdue_phases=sum(1 for p in phases if effective_status(p, today) == "overdue"),
    )
