# billgen/domain/services/tax_calculator.py
"""
Bill amount and GST split computation.

All arithmetic is done on Decimal and rounded half-up to 2 places at every
stage. Intra-state supplies carry CGST + SGST (half the rate each), inter-state
supplies carry IGST at the full rate.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from billgen.domain.errors import EmptyItemSet, InvalidAmount

ZERO = Decimal("0")
TWO_PLACES = Decimal("0.01")
TOLERANCE = Decimal("0.01")
DEFAULT_GST_RATE = Decimal("0.18")
# Largest value a Numeric(14, 2) column holds
MAX_AMOUNT = Decimal("999999999999.99")


@dataclass(frozen=True)
class TaxSplit:
    """Result of compute_tax(): either igst alone or sgst + cgst."""
    sgst: Decimal | None = None
    cgst: Decimal | None = None
    igst: Decimal | None = None

    @property
    def total(self) -> Decimal:
        if self.igst is not None:
            return self.igst
        return (self.sgst or ZERO) + (self.cgst or ZERO)

    @property
    def is_empty(self) -> bool:
        return self.sgst is None and self.cgst is None and self.igst is None


NO_TAX = TaxSplit()


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """Convert int/float/str/Decimal to a finite Decimal or raise InvalidAmount."""
    if isinstance(value, bool):
        raise InvalidAmount(f"{field} must be a number", field=field)
    try:
        dec = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"{field} must be a number", field=field)
    if not dec.is_finite():
        raise InvalidAmount(f"{field} must be finite", field=field)
    return within_limit(dec, field)


def within_limit(value: Decimal, field: str = "amount") -> Decimal:
    if abs(value) > MAX_AMOUNT:
        raise InvalidAmount(f"{field} exceeds the maximum of {MAX_AMOUNT}", field=field)
    return value


def round2(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def amounts_match(a: Decimal, b: Decimal) -> bool:
    """True when two money amounts agree within the 0.01 rounding tolerance."""
    return abs(a - b) <= TOLERANCE


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def compute_line_amount(quantity: Any, rate: Any) -> Decimal:
    """quantity × rate rounded to paise. Both must be strictly positive."""
    q = to_decimal(quantity, "quantity")
    r = to_decimal(rate, "rate")
    if q <= ZERO:
        raise InvalidAmount("quantity must be greater than 0", field="quantity")
    if r <= ZERO:
        raise InvalidAmount("rate must be greater than 0", field="rate")
    return within_limit(round2(q * r), "amount")


def compute_totals(items: Iterable[Mapping[str, Any]]) -> Decimal:
    """Sum of line amounts (the pre-tax total)."""
    items = list(items)
    if not items:
        raise EmptyItemSet("At least one item is required", field="items")

    total = ZERO
    for item in items:
        total += compute_line_amount(item.get("quantity"), item.get("rate"))
    return within_limit(round2(total), "totalBeforeTax")


def compute_tax(
    total_before_tax: Any,
    is_inter_state: bool,
    rate: Any = DEFAULT_GST_RATE,
) -> TaxSplit:
    """
    Split GST for a pre-tax total.

    Each intra-state half is rounded on its own, so sgst and cgst are equal
    except in pathological cases; their sum is always within 0.01 of the
    whole-rate tax.
    """
    base = to_decimal(total_before_tax, "totalBeforeTax")
    r = to_decimal(rate, "rate")
    if base < ZERO:
        raise InvalidAmount("totalBeforeTax cannot be negative", field="totalBeforeTax")
    if r < ZERO:
        raise InvalidAmount("rate cannot be negative", field="rate")

    if is_inter_state:
        return TaxSplit(igst=round2(base * r))

    half = r / 2
    return TaxSplit(sgst=round2(base * half), cgst=round2(base * half))


def compute_grand_total(total_before_tax: Any, tax_split: TaxSplit) -> Decimal:
    base = to_decimal(total_before_tax, "totalBeforeTax")
    return within_limit(round2(base + tax_split.total), "totalAmount")


def is_inter_state(party_state_code: str | None, company_state_code: str) -> bool:
    """
    A supply is inter-state when the party's state code is known and differs
    from ours. Unknown state is treated as intra-state.
    """
    if not party_state_code:
        return False
    return party_state_code.strip() != company_state_code.strip()


def reconciles(total_before_tax: Decimal, tax_split: TaxSplit, total_amount: Decimal) -> bool:
    return amounts_match(total_before_tax + tax_split.total, total_amount)
