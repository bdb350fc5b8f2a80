"""
test_progress_billing_engine.py — Progress billing phases.

Tests cover:
  - amount = document_total × percentage / 100
  - phase percentages never exceeding 100 % (PhaseOverflow on add / edit)
  - pending → billed → paid lifecycle
  - derived overdue status and the billing summary
"""

from datetime import date

import pytest

from invoicing.models.invoice_models import ProgressBillingPhase
from invoicing.services.exceptions import (
    InvalidRate,
    InvalidTransition,
    InvalidValue,
    PhaseOverflow,
)
from invoicing.services.progress_billing_engine import (
    add_phase,
    billing_summary,
    effective_status,
    mark_billed,
    mark_paid,
    recalculate_phases,
    remove_phase,
    update_phase_percentage,
)

DOCUMENT_TOTAL = 10_000.0


@pytest.fixture
def schedule():
    """Deposit 30 % (3000) + rough-in 50 % (5000) against a 10 000 total."""
    phases = add_phase([], ProgressBillingPhase(id="p1", phase="Deposit", percentage=30), DOCUMENT_TOTAL)
    return add_phase(phases, ProgressBillingPhase(id="p2", phase="Rough-in", percentage=50), DOCUMENT_TOTAL)


class TestPhaseAllocation:

    def test_amounts_follow_percentage(self, schedule):
        assert [p.amount for p in schedule] == [3000.0, 5000.0]

    def test_fill_to_exactly_100(self, schedule):
        phases = add_phase(schedule, ProgressBillingPhase(phase="Final", percentage=20), DOCUMENT_TOTAL)
        assert phases[-1].amount == 2000.0

    def test_overflow_on_add(self, schedule):
        """30 + 50 + 25 = 105 % → rejected, schedule unchanged."""
        with pytest.raises(PhaseOverflow) as exc_info:
            add_phase(schedule, ProgressBillingPhase(phase="Final", percentage=25), DOCUMENT_TOTAL)
        assert exc_info.value.total_percentage == 105
        assert len(schedule) == 2

    def test_overflow_on_edit(self, schedule):
        with pytest.raises(PhaseOverflow):
            update_phase_percentage(schedule, "p1", 60, DOCUMENT_TOTAL)

    def test_edit_within_limit(self, schedule):
        phases = update_phase_percentage(schedule, "p1", 50, DOCUMENT_TOTAL)
        assert phases[0].percentage == 50
        assert phases[0].amount == 5000.0

    def test_fractional_thirds_fit(self):
        phases = []
        for name in ("One", "Two", "Three"):
            phases = add_phase(phases, ProgressBillingPhase(phase=name, percentage=100 / 3), 900.0)
        assert [p.amount for p in phases] == [300.0, 300.0, 300.0]

    def test_single_phase_over_100_is_overflow(self):
        """One 150 % phase on an empty schedule is a sum above 100 %."""
        with pytest.raises(PhaseOverflow) as exc_info:
            add_phase([], ProgressBillingPhase(phase="All", percentage=150), DOCUMENT_TOTAL)
        assert exc_info.value.code == "PHASE_OVERFLOW"
        assert exc_info.value.total_percentage == 150

    def test_edit_single_phase_over_100_is_overflow(self, schedule):
        with pytest.raises(PhaseOverflow):
            update_phase_percentage(schedule[:1], "p1", 120, DOCUMENT_TOTAL)

    @pytest.mark.parametrize("pct", [0, -10, float("inf"), float("nan")])
    def test_non_positive_percentage_rejected(self, pct):
        with pytest.raises(InvalidRate):
            add_phase([], ProgressBillingPhase(phase="Bad", percentage=pct), DOCUMENT_TOTAL)

    def test_remove_phase(self, schedule):
        phases = remove_phase(schedule, "p1")
        assert [p.id for p in phases] == ["p2"]

    def test_unknown_phase_id(self, schedule):
        with pytest.raises(InvalidValue):
            remove_phase(schedule, "nope")

    def test_recalculate_on_total_change(self, schedule):
        """Total 10 000 → 12 000: 30 % → 3600, 50 % → 6000."""
        phases = recalculate_phases(schedule, 12_000.0)
        assert [p.amount for p in phases] == [3600.0, 6000.0]

    def test_recalculate_rejects_overfull_input(self):
        phases = [
            ProgressBillingPhase(phase="A", percentage=60),
            ProgressBillingPhase(phase="B", percentage=60),
        ]
        with pytest.raises(PhaseOverflow):
            recalculate_phases(phases, DOCUMENT_TOTAL)


class TestPhaseLifecycle:

    def test_pending_billed_paid(self, schedule):
        billed = mark_billed(schedule[0], date(2024, 6, 1), invoice_id="INV-7")
        assert billed.status == "billed"
        assert billed.invoice_id == "INV-7"
        paid = mark_paid(billed, date(2024, 6, 20))
        assert paid.status == "paid"
        assert paid.paid_date == date(2024, 6, 20)

    def test_cannot_pay_unbilled(self, schedule):
        with pytest.raises(InvalidTransition):
            mark_paid(schedule[0], date(2024, 6, 1))

    def test_cannot_bill_twice(self, schedule):
        billed = mark_billed(schedule[0], date(2024, 6, 1))
        with pytest.raises(InvalidTransition):
            mark_billed(billed, date(2024, 6, 2))


class TestOverdue:

    def test_past_due_unpaid_is_overdue(self, today):
        phase = ProgressBillingPhase(phase="A", percentage=10, due_date=date(2024, 6, 1))
        assert effective_status(phase, today) == "overdue"

    def test_due_today_not_overdue(self, today):
        phase = ProgressBillingPhase(phase="A", percentage=10, due_date=today)
        assert effective_status(phase, today) == "pending"

    def test_paid_never_overdue(self, today):
        phase = ProgressBillingPhase(
            phase="A", percentage=10, due_date=date(2024, 1, 1), status="paid",
        )
        assert effective_status(phase, today) == "paid"

    def test_no_due_date(self, today):
        phase = ProgressBillingPhase(phase="A", percentage=10, status="billed")
        assert effective_status(phase, today) == "billed"


class TestBillingSummary:

    def test_summary(self, schedule, today):
        """
        p1 30 % billed (3000), past due → overdue
        p2 50 % paid   (5000)
        p3 20 % pending (2000), due in the future
        allocated 100 %, billed 3000, paid 5000, outstanding 5000
        """
        p1 = mark_billed(schedule[0].model_copy(update={"due_date": date(2024, 6, 1)}), date(2024, 5, 20))
        p2 = mark_paid(mark_billed(schedule[1], date(2024, 5, 1)), date(2024, 5, 15))
        phases = add_phase(
            [p1, p2],
            ProgressBillingPhase(phase="Final", percentage=20, due_date=date(2024, 7, 1)),
            DOCUMENT_TOTAL,
        )
        summary = billing_summary(phases, DOCUMENT_TOTAL, today)
        assert summary.allocated_percentage == 100
        assert summary.remaining_percentage == 0
        assert summary.scheduled_amount == 10_000.0
        assert summary.billed_amount == 3000.0
        assert summary.paid_amount == 5000.0
        assert summary.outstanding_amount == 5000.0
        assert summary.overdue_phases == 1

    def test_empty_schedule(self, today):
        summary = billing_summary([], DOCUMENT_TOTAL, today)
        assert summary.remaining_percentage == 100
        assert summary.scheduled_amount == 0
