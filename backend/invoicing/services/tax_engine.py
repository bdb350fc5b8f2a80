"""
tax_engine.py — Category Tax Engine

Every line item category maps onto exactly one of four tax buckets
(material, labor, equipment, other) through ``config.CATEGORY_TAX_BUCKET``.
For each bucket the engine sums item totals and applies the bucket's
externally supplied rate:

    bucket_tax = round(bucket_subtotal × rate / 100, 2)
    total_tax  = material_tax + labor_tax + equipment_tax + other_tax

Only category-level rates are read. The per-item ``tax_rate`` field is
informational and never affects totals.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Mapping, Optional, Union

from invoicing.config import require_percent, tax_bucket_for
from invoicing.models.invoice_models import (
    Category,
    CategoryTaxRates,
    CategoryTotals,
    LineItem,
    TaxBreakdown,
    TaxBucket,
)
from invoicing.services.exceptions import MissingBase

logger = logging.getLogger("invoicing-tax")

RatesInput = Union[CategoryTaxRates, Mapping[str, Optional[float]]]


def validate_tax_rates(rates: Optional[RatesInput]) -> CategoryTaxRates:
    """
    Coerce ``rates`` into ``CategoryTaxRates`` and check every bucket.

    A plain mapping must name all four buckets; a bucket that is absent or
    null is never treated as 0 %.

    Raises:
        MissingBase: a bucket has no configured rate.
        InvalidRate: a rate is outside [0, 100].
    """
    if rates is None:
        raise MissingBase("tax rates", field="tax_rates")
    if isinstance(rates, CategoryTaxRates):
        values = rates.model_dump()
    else:
        values = {}
        for bucket in TaxBucket:
            if rates.get(bucket.value) is None:
                raise MissingBase(f"tax rate for '{bucket.value}'", field=f"{bucket.value}_tax_rate")
            values[bucket.value] = rates[bucket.value]

    checked = {
        bucket: require_percent(value, field=f"{bucket}_tax_rate")
        for bucket, value in values.items()
    }
    return CategoryTaxRates(**checked)


def bucket_items(line_items: Iterable[LineItem]) -> Dict[TaxBucket, List[LineItem]]:
    grouped: Dict[TaxBucket, List[LineItem]] = {bucket: [] for bucket in TaxBucket}
    for item in line_items:
        grouped[tax_bucket_for(item.category)].append(item)
    return grouped


def category_totals(line_items: Iterable[LineItem]) -> CategoryTotals:
    """Sum of item totals per tax bucket, rounded to cents."""
    grouped = bucket_items(line_items)
    return CategoryTotals(**{
        bucket.value: round(math.fsum(i.total for i in items), 2)
        for bucket, items in grouped.items()
    })


def category_subtotal(line_items: Iterable[LineItem], category: Category) -> float:
    """Sum of item totals for one exact category (not bucket), rounded to cents."""
    target = Category(category)
    return round(math.fsum(i.total for i in line_items if i.category == target), 2)


def calculate_subtotal(line_items: Iterable[LineItem]) -> float:
    return round(math.fsum(i.total for i in line_items), 2)


def calculate_tax_breakdown(line_items: Iterable[LineItem], rates: RatesInput) -> TaxBreakdown:
    """
    Apply the four bucket rates to the bucket subtotals.

    Buckets without items contribute zero. ``total_tax`` is the exact sum of
    the four rounded bucket taxes.
    """
    checked = validate_tax_rates(rates)
    grouped = bucket_items(line_items)

    taxes: Dict[str, float] = {}
    for bucket, items in grouped.items():
        bucket_subtotal = math.fsum(i.total for i in items)
        taxes[f"{bucket.value}_tax"] = round(bucket_subtotal * checked.for_bucket(bucket) / 100.0, 2)

    total_tax = (
        taxes["material_tax"]
        + taxes["labor_tax"]
        + taxes["equipment_tax"]
        + taxes["other_tax"]
    )
    logger.debug("tax breakdown computed", extra={"total_tax": total_tax})
    return TaxBreakdown(total_tax=total_tax, **taxes)
