"""
Invoice / quote data model.

Value models (line items, discounts, payments, change orders, billing phases,
totals, snapshots) are frozen: every engine operation returns a new instance
instead of mutating its input. ``DocumentDraft`` is the only mutable model;
it holds the editing state that ``assemble_snapshot`` freezes.

All rates and percentages are expressed as percents (8.25 means 8.25 %).
"""
from __future__ import annotations

from datetime import date as Date
from enum import Enum
from typing import List, Literal, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def _new_id() -> str:
    return str(uuid4())


# ── Categories ────────────────────────────────────────────────────────────────

class Category(str, Enum):
    """Closed set of line item categories."""
    MATERIAL = "material"
    LABOR = "labor"
    EQUIPMENT = "equipment"
    ELECTRICAL = "electrical"
    PLUMBING = "plumbing"
    FRAMING = "framing"
    LANDSCAPING = "landscaping"
    PERMIT = "permit"
    OTHER = "other"


class TaxBucket(str, Enum):
    """The four tax groupings every category maps onto."""
    MATERIAL = "material"
    LABOR = "labor"
    EQUIPMENT = "equipment"
    OTHER = "other"


DiscountType = Literal["percentage", "fixed"]
DiscountBase = Literal["subtotal", "total", "category"]
PaymentMethod = Literal["cash", "check", "credit_card", "bank_transfer", "other"]
ChangeOrderStatus = Literal["draft", "approved", "rejected"]
PhaseStatus = Literal["pending", "billed", "paid"]
PhaseDisplayStatus = Literal["pending", "billed", "paid", "overdue"]
PaymentStatus = Literal["unpaid", "partial_paid", "paid"]
DocumentType = Literal["invoice", "quote"]
DocumentStatus = Literal[
    "draft",
    "sent",
    "accepted",
    "rejected",
    "expired",
    "paid",
    "overdue",
    "converted",
    "partial_paid",
    "signed",
]


# ── Configuration ─────────────────────────────────────────────────────────────

class CategoryTaxRates(BaseModel):
    """Tax rate (percent) for each of the four tax buckets. All four are required."""
    model_config = ConfigDict(frozen=True)

    material: float
    labor: float
    equipment: float
    other: float

    def for_bucket(self, bucket: TaxBucket) -> float:
        return getattr(self, bucket.value)


class BusinessConfig(BaseModel):
    """
    Contractor-level defaults passed explicitly into every derivation call.

    Only ``tax_rates`` affects persisted totals; the per-item ``tax_rate`` a
    category change stamps onto a line item is informational.
    """
    model_config = ConfigDict(frozen=True)

    tax_rates: CategoryTaxRates
    default_material_markup: float = 0.0
    default_labor_markup: float = 0.0


# ── Line items & rules ────────────────────────────────────────────────────────

class LineItem(BaseModel):
    """
    A single billable entry.

    ``total`` is always ``quantity * rate``; ``cost`` / ``markup`` / ``rate``
    form a dependent triad kept consistent by the line item engine.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    description: str = ""
    category: Category = Category.MATERIAL
    quantity: float = 0.0
    unit: str = "each"
    cost: Optional[float] = Field(None, description="Base cost before markup")
    markup: Optional[float] = Field(None, description="Markup percent applied to cost")
    rate: float = 0.0
    tax_rate: Optional[float] = Field(None, description="Informational only; not used for totals")
    total: float = 0.0
    notes: Optional[str] = None


class Discount(BaseModel):
    """One independent discount rule."""
    model_config = ConfigDict(frozen=True)

    type: DiscountType = "percentage"
    value: float = 0.0
    description: str = ""
    applies_to: DiscountBase = "subtotal"
    category: Optional[Category] = None


class Payment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    date: Date
    amount: float
    method: PaymentMethod = "check"
    reference: Optional[str] = None
    notes: Optional[str] = None


# ── Derived figures ───────────────────────────────────────────────────────────

class TaxBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    material_tax: float = 0.0
    labor_tax: float = 0.0
    equipment_tax: float = 0.0
    other_tax: float = 0.0
    total_tax: float = 0.0


class CategoryTotals(BaseModel):
    """Sum of item totals per tax bucket."""
    model_config = ConfigDict(frozen=True)

    material: float = 0.0
    labor: float = 0.0
    equipment: float = 0.0
    other: float = 0.0


class InvoiceTotals(BaseModel):
    """Output of the totals assembler. Identical inputs give identical totals."""
    model_config = ConfigDict(frozen=True)

    subtotal: float
    category_subtotals: CategoryTotals
    tax_breakdown: TaxBreakdown
    tax_amount: float
    discount_amount: float
    total: float
    deposit_percentage: float
    deposit_amount: float
    amount_after_deposit: float   # presentation only, not the balance due
    total_paid: float
    balance_due: float


# ── Change orders & progress billing ──────────────────────────────────────────

class ChangeOrder(BaseModel):
    """A scope amendment with its own item pipeline; totals may be negative."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    number: str
    date: Date
    description: str = ""
    reason: Optional[str] = None
    line_items: Tuple[LineItem, ...] = ()
    subtotal: float = 0.0
    tax_amount: float = 0.0
    total: float = 0.0
    status: ChangeOrderStatus = "draft"
    approved_by: Optional[str] = None
    approved_date: Optional[Date] = None


class ProgressBillingPhase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    phase: str
    description: str = ""
    percentage: float
    amount: float = 0.0
    due_date: Optional[Date] = None
    status: PhaseStatus = "pending"
    billed_date: Optional[Date] = None
    paid_date: Optional[Date] = None
    invoice_id: Optional[str] = None


class BillingSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    allocated_percentage: float
    remaining_percentage: float
    scheduled_amount: float
    billed_amount: float
    paid_amount: float
    outstanding_amount: float
    overdue_phases: int


# ── Documents ─────────────────────────────────────────────────────────────────

class DocumentDraft(BaseModel):
    """Mutable editing state of an invoice or quote."""

    id: str = Field(default_factory=_new_id)
    type: DocumentType = "invoice"
    number: str = ""
    status: DocumentStatus = "draft"
    date: Optional[Date] = None
    due_date: Optional[Date] = None
    expiry_date: Optional[Date] = None
    project_title: str = ""
    line_items: List[LineItem] = Field(default_factory=list)
    tax_rates: Optional[CategoryTaxRates] = None   # filled from BusinessConfig by the API
    discounts: List[Discount] = Field(default_factory=list)
    deposit_percentage: float = 0.0
    payments: List[Payment] = Field(default_factory=list)
    change_orders: List[ChangeOrder] = Field(default_factory=list)
    is_progress_billing: bool = False
    progress_billing: List[ProgressBillingPhase] = Field(default_factory=list)
    original_quote_id: Optional[str] = None
    converted_invoice_id: Optional[str] = None
    terms: Optional[str] = None
    notes: Optional[str] = None


class DocumentSnapshot(BaseModel):
    """
    Immutable, internally consistent result of assembling a draft.

    Holds copies of every input so the totals can be recomputed from the
    snapshot alone.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    type: DocumentType
    number: str
    status: DocumentStatus
    date: Optional[Date] = None
    due_date: Optional[Date] = None
    expiry_date: Optional[Date] = None
    project_title: str = ""
    line_items: Tuple[LineItem, ...] = ()
    tax_rates: CategoryTaxRates
    discounts: Tuple[Discount, ...] = ()
    deposit_percentage: float = 0.0
    payments: Tuple[Payment, ...] = ()
    change_orders: Tuple[ChangeOrder, ...] = ()
    is_progress_billing: bool = False
    progress_billing: Tuple[ProgressBillingPhase, ...] = ()
    billing_summary: Optional[BillingSummary] = None
    original_quote_id: Optional[str] = None
    converted_invoice_id: Optional[str] = None
    terms: Optional[str] = None
    notes: Optional[str] = None
    totals: InvoiceTotals
    change_order_total: float = 0.0
    project_total: float = 0.0
