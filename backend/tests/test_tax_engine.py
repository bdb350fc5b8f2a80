"""
test_tax_engine.py — Unit tests for the category tax engine.

Tests cover:
  - category → bucket mapping (electrical / plumbing / framing / landscaping /
    permit / other all fold into 'other')
  - per-bucket tax = bucket subtotal × rate / 100
  - total_tax is exactly the sum of the four bucket taxes
  - rate validation (out of range, missing bucket)
"""

import pytest
from pydantic import ValidationError

from invoicing.config import tax_bucket_for
from invoicing.models.invoice_models import Category, CategoryTaxRates, TaxBucket
from invoicing.services.exceptions import InvalidRate, MissingBase
from invoicing.services.tax_engine import (
    calculate_subtotal,
    calculate_tax_breakdown,
    category_subtotal,
    category_totals,
    validate_tax_rates,
)


class TestBucketMapping:

    @pytest.mark.parametrize("category,bucket", [
        (Category.MATERIAL, TaxBucket.MATERIAL),
        (Category.LABOR, TaxBucket.LABOR),
        (Category.EQUIPMENT, TaxBucket.EQUIPMENT),
        (Category.ELECTRICAL, TaxBucket.OTHER),
        (Category.PLUMBING, TaxBucket.OTHER),
        (Category.FRAMING, TaxBucket.OTHER),
        (Category.LANDSCAPING, TaxBucket.OTHER),
        (Category.PERMIT, TaxBucket.OTHER),
        (Category.OTHER, TaxBucket.OTHER),
    ])
    def test_every_category_has_one_bucket(self, category, bucket):
        assert tax_bucket_for(category) == bucket

    def test_category_totals(self, mixed_items):
        totals = category_totals(mixed_items)
        assert totals.material == 20
        assert totals.labor == 15
        assert totals.equipment == 50
        assert totals.other == 35   # permit 5 + electrical 30

    def test_category_subtotal_is_exact_category(self, mixed_items):
        assert category_subtotal(mixed_items, Category.ELECTRICAL) == 30
        assert category_subtotal(mixed_items, Category.PLUMBING) == 0


class TestTaxBreakdown:

    def test_example_a(self, example_a_items, example_a_rates):
        """
        material 2 × 10 = 20 at 10 %  → 2.00
        labor    1 × 50 = 50 at  0 %  → 0.00
        subtotal 70, total_tax 2.00
        """
        assert calculate_subtotal(example_a_items) == 70
        breakdown = calculate_tax_breakdown(example_a_items, example_a_rates)
        assert breakdown.material_tax == 2.0
        assert breakdown.labor_tax == 0.0
        assert breakdown.total_tax == 2.0

    def test_mixed_buckets(self, mixed_items, flat_rates):
        """
        Rates 8 / 0 / 8 / 8:
          material   20 × 8 % = 1.60
          labor      15 × 0 % = 0.00
          equipment  50 × 8 % = 4.00
          other      35 × 8 % = 2.80
        """
        breakdown = calculate_tax_breakdown(mixed_items, flat_rates)
        assert breakdown.material_tax == 1.6
        assert breakdown.labor_tax == 0.0
        assert breakdown.equipment_tax == 4.0
        assert breakdown.other_tax == 2.8
        assert abs(breakdown.total_tax - 8.4) < 1e-9

    def test_total_tax_is_exact_sum(self, mixed_items, business_config):
        b = calculate_tax_breakdown(mixed_items, business_config.tax_rates)
        assert b.total_tax == b.material_tax + b.labor_tax + b.equipment_tax + b.other_tax

    def test_per_item_tax_rate_ignored(self, example_a_items, example_a_rates):
        stamped = [i.model_copy(update={"tax_rate": 99.0}) for i in example_a_items]
        assert calculate_tax_breakdown(stamped, example_a_rates) == \
            calculate_tax_breakdown(example_a_items, example_a_rates)

    def test_empty_items_zero_tax(self, flat_rates):
        breakdown = calculate_tax_breakdown([], flat_rates)
        assert breakdown.total_tax == 0.0

    def test_accepts_plain_mapping(self, example_a_items):
        rates = {"material": 10, "labor": 0, "equipment": 0, "other": 0}
        assert calculate_tax_breakdown(example_a_items, rates).total_tax == 2.0


class TestRateValidation:

    def test_rate_above_100_rejected(self, example_a_items):
        with pytest.raises(InvalidRate) as exc_info:
            calculate_tax_breakdown(example_a_items, CategoryTaxRates(material=101, labor=0, equipment=0, other=0))
        assert exc_info.value.field == "material_tax_rate"

    def test_negative_rate_rejected(self):
        with pytest.raises(InvalidRate):
            validate_tax_rates(CategoryTaxRates(material=0, labor=-0.5, equipment=0, other=0))

    def test_missing_bucket_rejected(self):
        with pytest.raises(MissingBase):
            validate_tax_rates({"material": 8, "labor": 0, "equipment": 8})

    def test_partial_rate_set_rejected(self, example_a_items):
        """Only material configured: the labor bucket must not silently become 0 %."""
        with pytest.raises(MissingBase) as exc_info:
            calculate_tax_breakdown(example_a_items, {"material": 10})
        assert exc_info.value.code == "MISSING_BASE"
        assert exc_info.value.field == "labor_tax_rate"

    def test_null_bucket_rejected(self):
        with pytest.raises(MissingBase):
            validate_tax_rates({"material": 8, "labor": None, "equipment": 8, "other": 8})

    def test_no_rates_rejected(self):
        with pytest.raises(MissingBase) as exc_info:
            validate_tax_rates(None)
        assert exc_info.value.field == "tax_rates"

    def test_rates_model_requires_every_bucket(self):
        with pytest.raises(ValidationError):
            CategoryTaxRates(material=10)

    def test_boundaries_accepted(self):
        rates = validate_tax_rates({"material": 0, "labor": 100, "equipment": 0, "other": 100})
        assert rates.labor == 100
