"""
Invoice Calculation API Routes

POST /api/invoices/totals                    — totals for items / rates / discounts / deposit / payments
POST /api/invoices/snapshot                  — assemble a full document snapshot from a draft
POST /api/invoices/line-items/new            — blank line item with category defaults
POST /api/invoices/line-items/edit           — apply one field edit to a line item
POST /api/invoices/change-orders/calculate   — derive a change order (optionally approve / reject)
POST /api/invoices/progress-billing/schedule — phase amounts, display status and summary

Stateless: every call recomputes from its request body. Calculation errors
are turned into 422 responses by the handler registered in ``main.py``.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from invoicing.models.invoice_models import (
    BillingSummary,
    BusinessConfig,
    Category,
    ChangeOrder,
    Discount,
    DocumentDraft,
    DocumentSnapshot,
    InvoiceTotals,
    LineItem,
    Payment,
    PhaseDisplayStatus,
    ProgressBillingPhase,
)
from invoicing.services.change_order_engine import (
    approve_change_order,
    calculate_change_order,
    change_order_kind,
    reject_change_order,
)
from invoicing.services.discount_engine import discount_breakdown
from invoicing.services.line_item_engine import apply_edit, new_line_item, normalize_line_item
from invoicing.services.progress_billing_engine import (
    billing_summary,
    effective_status,
    recalculate_phases,
)
from invoicing.services.totals_assembler import assemble_snapshot, assemble_totals, verify_snapshot

router = APIRouter(prefix="/api/invoices", tags=["Invoice Calculations"])
logger = logging.getLogger("invoicing-routes")


def get_business_config(request: Request) -> BusinessConfig:
    """Business defaults loaded once at start-up (see ``main.lifespan``)."""
    return request.app.state.business_config


# Partial rate sets are allowed through the schema so the engine can report
# the missing bucket as MISSING_BASE.
TaxRatesBody = Dict[str, Optional[float]]


# ── Pydantic Models ─────────────────────────────────────────────────────────

class TotalsRequest(BaseModel):
    line_items: List[LineItem] = Field(default_factory=list)
    tax_rates: Optional[TaxRatesBody] = None   # falls back to business defaults
    discounts: List[Discount] = Field(default_factory=list)
    deposit_percentage: float = 0.0
    payments: List[Payment] = Field(default_factory=list)


class TotalsResponse(BaseModel):
    totals: InvoiceTotals
    discounts: List[Dict[str, Any]]


class SnapshotRequest(BaseModel):
    draft: DocumentDraft
    today: Optional[date] = None


class SnapshotResponse(BaseModel):
    snapshot: DocumentSnapshot
    verified: bool


class NewLineItemRequest(BaseModel):
    category: Category = Category.MATERIAL
    description: str = ""


class LineItemEditRequest(BaseModel):
    item: LineItem
    field: str
    value: Any = None
    allow_credit: bool = False


class ChangeOrderRequest(BaseModel):
    change_order: ChangeOrder
    tax_rates: Optional[TaxRatesBody] = None
    action: Optional[Literal["approve", "reject"]] = None
    approved_by: Optional[str] = None
    approved_date: Optional[date] = None


class ChangeOrderResponse(BaseModel):
    change_order: ChangeOrder
    kind: str


class ScheduleRequest(BaseModel):
    phases: List[ProgressBillingPhase]
    document_total: float
    today: Optional[date] = None


class ScheduledPhase(BaseModel):
    phase: ProgressBillingPhase
    display_status: PhaseDisplayStatus


class ScheduleResponse(BaseModel):
    phases: List[ScheduledPhase]
    summary: BillingSummary


# ── Endpoints ───────────────────────────────────────────────────────────────

@router.post("/totals", response_model=TotalsResponse)
def calculate_totals(
    body: TotalsRequest,
    config: BusinessConfig = Depends(get_business_config),
):
    rates = body.tax_rates if body.tax_rates is not None else config.tax_rates
    totals = assemble_totals(
        body.line_items,
        rates,
        body.discounts,
        body.deposit_percentage,
        body.payments,
    )
    rows = discount_breakdown(
        totals.subtotal,
        totals.tax_amount,
        body.discounts,
        [normalize_line_item(i) for i in body.line_items],
    )
    return TotalsResponse(totals=totals, discounts=rows)


@router.post("/snapshot", response_model=SnapshotResponse)
def build_snapshot(
    body: SnapshotRequest,
    config: BusinessConfig = Depends(get_business_config),
):
    draft = body.draft
    if draft.tax_rates is None:
        draft = draft.model_copy(update={"tax_rates": config.tax_rates})
    snapshot = assemble_snapshot(draft, body.today or date.today())
    logger.info(
        "snapshot built",
        extra={"document_id": snapshot.id, "status": snapshot.status},
    )
    return SnapshotResponse(snapshot=snapshot, verified=verify_snapshot(snapshot))


@router.post("/line-items/new", response_model=LineItem)
def create_line_item(
    body: NewLineItemRequest,
    config: BusinessConfig = Depends(get_business_config),
):
    return new_line_item(config, body.category, description=body.description)


@router.post("/line-items/edit", response_model=LineItem)
def edit_line_item(
    body: LineItemEditRequest,
    config: BusinessConfig = Depends(get_business_config),
):
    return apply_edit(body.item, body.field, body.value, config, allow_credit=body.allow_credit)


@router.post("/change-orders/calculate", response_model=ChangeOrderResponse)
def calculate_change_order_route(
    body: ChangeOrderRequest,
    config: BusinessConfig = Depends(get_business_config),
):
    rates = body.tax_rates if body.tax_rates is not None else config.tax_rates
    change_order = calculate_change_order(body.change_order, rates)
    if body.action == "approve":
        change_order = approve_change_order(
            change_order,
            approved_by=body.approved_by,
            approved_date=body.approved_date or date.today(),
        )
    elif body.action == "reject":
        change_order = reject_change_order(change_order)
    return ChangeOrderResponse(change_order=change_order, kind=change_order_kind(change_order))


@router.post("/progress-billing/schedule", response_model=ScheduleResponse)
def schedule_progress_billing(body: ScheduleRequest):
    today = body.today or date.today()
    phases = recalculate_phases(body.phases, body.document_total)
    return ScheduleResponse(
        phases=[
            ScheduledPhase(phase=p, display_status=effective_status(p, today))
            for p in phases
        ],
        summary=billing_summary(phases, body.document_total, today),
    )
