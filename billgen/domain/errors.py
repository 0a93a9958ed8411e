# billgen/domain/errors.py
"""
Domain exceptions for bill generation.

Every exception carries a stable ``code`` and the HTTP ``status_code`` the API
layer answers with. 4xx errors are safe to show to the caller as-is; 5xx
errors are logged server-side and replaced by a generic message.
"""

from __future__ import annotations


class BillError(Exception):
    """Base class for all bill-domain failures."""

    code = "BILL_ERROR"
    status_code = 500

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


# ---------------------------------------------------------------------------
# 400: caller errors
# ---------------------------------------------------------------------------

class BillValidationError(BillError):
    """Missing/malformed input, GST arithmetic mismatch, unknown enum value."""

    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidAmount(BillValidationError):
    code = "INVALID_AMOUNT"


class EmptyItemSet(BillValidationError):
    code = "EMPTY_ITEM_SET"


class ImmutableFieldViolation(BillError):
    """Raised when an update touches numbering, monetary or party fields."""

    code = "IMMUTABLE_FIELD"
    status_code = 400


class InvalidStatusTransition(BillError):
    code = "INVALID_STATUS_TRANSITION"
    status_code = 400


class NotFound(BillError):
    code = "NOT_FOUND"
    status_code = 404


# ---------------------------------------------------------------------------
# 500: server-side failures
# ---------------------------------------------------------------------------

class AllocationExhausted(BillError):
    """More than 9999 bills of one type requested on one calendar day."""

    code = "ALLOCATION_EXHAUSTED"


class TemplateDataMissing(BillError):
    code = "TEMPLATE_DATA_MISSING"


class RenderTimeout(BillError):
    code = "RENDER_TIMEOUT"
