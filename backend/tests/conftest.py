"""
conftest.py — Shared pytest fixtures for the invoicing backend test suite.

No database or external service fixtures are defined here.  All engine tests
are pure unit tests that exercise the calculation functions in isolation;
the API tests drive the FastAPI app through ``TestClient``.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``invoicing.*`` imports resolve correctly regardless of where pytest is
    invoked.
"""

import sys
import os
from datetime import date

import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any invoicing imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Configuration fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def business_config():
    """
    BusinessConfig with explicit, non-default values for deterministic math.

    Tax rates: material 10 %, labor 0 %, equipment 5 %, other 8 %.
    Markups:   material 20 %, labor 15 %.
    """
    from invoicing.models.invoice_models import BusinessConfig, CategoryTaxRates
    return BusinessConfig(
        tax_rates=CategoryTaxRates(material=10.0, labor=0.0, equipment=5.0, other=8.0),
        default_material_markup=20.0,
        default_labor_markup=15.0,
    )


@pytest.fixture(scope="session")
def example_a_rates():
    """Rates from the worked example: material 10 %, everything else 0 %."""
    from invoicing.models.invoice_models import CategoryTaxRates
    return CategoryTaxRates(material=10.0, labor=0.0, equipment=0.0, other=0.0)


@pytest.fixture(scope="session")
def flat_rates():
    """Rates 8 / 0 / 8 / 8 (material / labor / equipment / other)."""
    from invoicing.models.invoice_models import CategoryTaxRates
    return CategoryTaxRates(material=8.0, labor=0.0, equipment=8.0, other=8.0)


@pytest.fixture(scope="session")
def today():
    """Fixed 'today' so date-derived statuses are deterministic."""
    return date(2024, 6, 15)


# ---------------------------------------------------------------------------
# Shared sample line items
# ---------------------------------------------------------------------------

@pytest.fixture
def example_a_items():
    """
    [{material, qty=2, rate=10}, {labor, qty=1, rate=50}] → subtotal 70.
    """
    from invoicing.models.invoice_models import Category, LineItem
    return [
        LineItem(description="Lumber", category=Category.MATERIAL, quantity=2, rate=10, total=20),
        LineItem(description="Install", category=Category.LABOR, quantity=1, rate=50, total=50),
    ]


@pytest.fixture
def mixed_items():
    """
    One item per tax bucket plus two categories that fold into 'other':

      material   20 × 1  = 20
      labor      15 × 1  = 15
      equipment  25 × 2  = 50
      permit      5 × 1  =  5   (→ other)
      electrical 10 × 3  = 30   (→ other)
                          ----
      subtotal            120
    """
    from invoicing.models.invoice_models import Category, LineItem
    return [
        LineItem(description="Drywall", category=Category.MATERIAL, quantity=1, rate=20, total=20),
        LineItem(description="Labor", category=Category.LABOR, quantity=1, rate=15, total=15),
        LineItem(description="Lift rental", category=Category.EQUIPMENT, quantity=2, rate=25, total=50),
        LineItem(description="City permit", category=Category.PERMIT, quantity=1, rate=5, total=5),
        LineItem(description="Outlets", category=Category.ELECTRICAL, quantity=3, rate=10, total=30),
    ]


@pytest.fixture
def hundred_dollar_item():
    """A single other-category item totalling exactly 100."""
    from invoicing.models.invoice_models import Category, LineItem
    return LineItem(description="Consulting", category=Category.OTHER, quantity=1, rate=100, total=100)
