"""
Calculation errors raised by the invoice engines.

Every error is raised at the point of the offending edit and is always
recoverable by the caller (re-prompt and retry). Engines never mutate their
inputs, so a raised error leaves the caller's document state untouched.
"""
from typing import Optional


class InvoiceCalculationError(ValueError):
    """Base exception for all invoice calculation errors."""

    def __init__(self, message: str, code: str = "CALCULATION_ERROR", field: Optional[str] = None):
        self.message = message
        self.code = code
        self.field = field
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code, "field": self.field}


# =============================================================================
# Numeric input errors
# =============================================================================

class InvalidRate(InvoiceCalculationError):
    """Raised when a tax, markup or percentage rate is outside [0, 100]."""

    def __init__(self, rate: float, field: str = "rate"):
        message = f"{field} must be between 0 and 100 (received {rate})"
        super().__init__(message, code="INVALID_RATE", field=field)
        self.rate = rate


class InvalidQuantity(InvoiceCalculationError):
    """Raised when a line item quantity is negative."""

    def __init__(self, quantity: float, field: str = "quantity"):
        message = f"{field} cannot be negative (received {quantity})"
        super().__init__(message, code="INVALID_QUANTITY", field=field)
        self.quantity = quantity


class InvalidValue(InvoiceCalculationError):
    """Raised when a monetary input (cost, rate, discount, payment) is not allowed."""

    def __init__(self, value: float, field: str = "value", reason: str = "cannot be negative"):
        message = f"{field} {reason} (received {value})"
        super().__init__(message, code="INVALID_VALUE", field=field)
        self.value = value


# =============================================================================
# Aggregation errors
# =============================================================================

class PhaseOverflow(InvoiceCalculationError):
    """Raised when progress billing phases would sum to more than 100 %."""

    def __init__(self, total_percentage: float):
        message = (
            f"Progress billing phases would total {total_percentage:g}% "
            f"of the document; the limit is 100%"
        )
        super().__init__(message, code="PHASE_OVERFLOW", field="percentage")
        self.total_percentage = total_percentage


class MissingBase(InvoiceCalculationError):
    """Raised when a category-scoped rule has no category or no configured rate."""

    def __init__(self, what: str, field: str = "category"):
        message = f"No base available: {what}"
        super().__init__(message, code="MISSING_BASE", field=field)


class InvalidTransition(InvoiceCalculationError):
    """Raised on an illegal lifecycle move (change order, phase, quote)."""

    def __init__(self, entity: str, current: str, target: str):
        message = f"{entity} cannot move from '{current}' to '{target}'"
        super().__init__(message, code="INVALID_TRANSITION", field="status")
        self.entity = entity
        self.current = current
        self.target = target
