"""
Invoicing configuration — single source of truth for category lookup tables,
input limits and shipped business defaults.

Import from here in all engines rather than hardcoding category names or
rates. Nothing in this module holds mutable state: ``load_business_config``
builds a fresh ``BusinessConfig`` that callers pass explicitly into every
derivation call.
"""
from __future__ import annotations

import logging
import math
import os
from typing import Dict, Optional

from invoicing.models.invoice_models import (
    BusinessConfig,
    Category,
    CategoryTaxRates,
    TaxBucket,
)
from invoicing.services.exceptions import InvalidRate, InvalidValue

logger = logging.getLogger("invoicing-config")


# ── Input limits ───────────────────────────────────────────────────────────────
# Percent inputs (tax, markup, deposit, discount %) must fall in this range.
MIN_PERCENT: float = 0.0
MAX_PERCENT: float = 100.0


def require_percent(value: float, field: str) -> float:
    """Return ``value`` as float, raising InvalidRate outside [0, 100]."""
    rate = float(value)
    if not math.isfinite(rate) or rate < MIN_PERCENT or rate > MAX_PERCENT:
        raise InvalidRate(value, field=field)
    return rate


def require_non_negative(value: float, field: str) -> float:
    """Return ``value`` as float, raising InvalidValue when negative or not finite."""
    amount = float(value)
    if not math.isfinite(amount):
        raise InvalidValue(value, field=field, reason="must be a finite number")
    if amount < 0:
        raise InvalidValue(value, field=field)
    return amount


# ── Category → tax bucket ──────────────────────────────────────────────────────
CATEGORY_TAX_BUCKET: Dict[Category, TaxBucket] = {
    Category.MATERIAL:    TaxBucket.MATERIAL,
    Category.LABOR:       TaxBucket.LABOR,
    Category.EQUIPMENT:   TaxBucket.EQUIPMENT,
    Category.ELECTRICAL:  TaxBucket.OTHER,
    Category.PLUMBING:    TaxBucket.OTHER,
    Category.FRAMING:     TaxBucket.OTHER,
    Category.LANDSCAPING: TaxBucket.OTHER,
    Category.PERMIT:      TaxBucket.OTHER,
    Category.OTHER:       TaxBucket.OTHER,
}

# Categories that carry a contractor default markup; every other category
# resets to 0 % markup when selected.
CATEGORY_MARKUP_FIELD: Dict[Category, str] = {
    Category.MATERIAL: "default_material_markup",
    Category.LABOR:    "default_labor_markup",
}


# ── Shipped defaults ───────────────────────────────────────────────────────────
DEFAULT_TAX_RATES: Dict[str, float] = {
    "material":  8.25,
    "labor":     0.0,
    "equipment": 8.25,
    "other":     8.25,
}

DEFAULT_MARKUPS: Dict[str, float] = {
    "default_material_markup": 0.0,
    "default_labor_markup":    0.0,
}

# Due date of an invoice converted from a quote: conversion day + N days.
PAYMENT_TERMS_DAYS: int = 30

# Environment variables that override the shipped defaults.
ENV_TAX_RATES: Dict[str, str] = {
    "material":  "DEFAULT_MATERIAL_TAX_RATE",
    "labor":     "DEFAULT_LABOR_TAX_RATE",
    "equipment": "DEFAULT_EQUIPMENT_TAX_RATE",
    "other":     "DEFAULT_OTHER_TAX_RATE",
}

ENV_MARKUPS: Dict[str, str] = {
    "default_material_markup": "DEFAULT_MATERIAL_MARKUP",
    "default_labor_markup":    "DEFAULT_LABOR_MARKUP",
}


def tax_bucket_for(category: Category) -> TaxBucket:
    return CATEGORY_TAX_BUCKET[Category(category)]


def default_markup_for(category: Category, config: BusinessConfig) -> float:
    """Default markup for ``category`` (nonzero only for material / labor)."""
    field_name = CATEGORY_MARKUP_FIELD.get(Category(category))
    if field_name is None:
        return 0.0
    return float(getattr(config, field_name))


def default_tax_rate_for(category: Category, config: BusinessConfig) -> float:
    """Configured tax rate of the bucket ``category`` belongs to."""
    return config.tax_rates.for_bucket(tax_bucket_for(category))


def _as_float(raw, field: str) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise InvalidValue(raw, field=field, reason="must be a number")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return _as_float(raw, name)


def _setting(ovr: Dict[str, float], key: str, env_name: str, default: float) -> float:
    if key in ovr:
        return _as_float(ovr[key], key)
    return _env_float(env_name, default)


def load_business_config(overrides: Optional[Dict[str, float]] = None) -> BusinessConfig:
    """
    Build a ``BusinessConfig`` from shipped defaults, environment variables
    and explicit ``overrides`` (in that order of precedence, lowest first).

    Override keys: ``material``, ``labor``, ``equipment``, ``other`` for tax
    rates and ``default_material_markup`` / ``default_labor_markup``.

    Raises:
        InvalidValue: an env or override value is not a number.
        InvalidRate:  if any resulting rate is outside [0, 100].
    """
    ovr = overrides or {}

    rates = {
        key: _setting(ovr, key, ENV_TAX_RATES[key], default)
        for key, default in DEFAULT_TAX_RATES.items()
    }
    markups = {
        key: _setting(ovr, key, ENV_MARKUPS[key], default)
        for key, default in DEFAULT_MARKUPS.items()
    }

    for key, value in rates.items():
        require_percent(value, field=f"{key}_tax_rate")
    for key, value in markups.items():
        require_percent(value, field=key)

    config = BusinessConfig(tax_rates=CategoryTaxRates(**rates), **markups)
    logger.debug("business config loaded", extra={"tax_rates": rates, "markups": markups})
    return config
