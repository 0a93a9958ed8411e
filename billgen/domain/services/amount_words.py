# billgen/domain/services/amount_words.py
"""Amount-in-words conversion using the Indian numbering system."""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal
from typing import Any

from billgen.domain.errors import InvalidAmount
from billgen.domain.services.tax_calculator import ZERO, round2, to_decimal

ONES = [
    "", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine",
]
TEENS = [
    "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen",
    "Sixteen", "Seventeen", "Eighteen", "Nineteen",
]
TENS = [
    "", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety",
]
SCALES = ["Hundred", "Thousand", "Lakh", "Crore"]

VOCABULARY = frozenset(w for w in ONES + TEENS + TENS + SCALES + ["Zero"] if w)

CRORE = 10_000_000
LAKH = 100_000
THOUSAND = 1_000


def _below_hundred(n: int) -> str:
    if n < 10:
        return ONES[n]
    if n < 20:
        return TEENS[n - 10]
    return TENS[n // 10] + (" " + ONES[n % 10] if n % 10 else "")


def _words(n: int) -> str:
    # Groups: units up to 999, then 2-digit thousand / lakh groups, then crore
    # (which recurses, so 1000 crore reads "One Thousand Crore").
    if n < 100:
        return _below_hundred(n)
    if n < THOUSAND:
        rest = n % 100
        return ONES[n // 100] + " Hundred" + (" " + _below_hundred(rest) if rest else "")
    if n < LAKH:
        rest = n % THOUSAND
        return _words(n // THOUSAND) + " Thousand" + (" " + _words(rest) if rest else "")
    if n < CRORE:
        rest = n % LAKH
        return _words(n // LAKH) + " Lakh" + (" " + _words(rest) if rest else "")
    rest = n % CRORE
    return _words(n // CRORE) + " Crore" + (" " + _words(rest) if rest else "")


def _non_negative(amount: Any) -> Decimal:
    value = to_decimal(amount, "amount")
    if value < ZERO:
        raise InvalidAmount("amount cannot be negative", field="amount")
    return value


def number_to_words(amount: Any) -> str:
    """
    Spell out the rupee part of ``amount`` (paise are truncated).

    >>> number_to_words(29500)
    'Twenty Nine Thousand Five Hundred'
    >>> number_to_words(0)
    'Zero'
    """
    rupees = int(_non_negative(amount).to_integral_value(rounding=ROUND_DOWN))
    if rupees == 0:
        return "Zero"
    return _words(rupees)


def amount_in_words(amount: Any) -> str:
    """Cheque-style text printed on bills: 'Rupees ... [and ... Paise] Only'."""
    value = round2(_non_negative(amount))
    rupees = int(value.to_integral_value(rounding=ROUND_DOWN))
    paise = int((value - rupees) * 100)

    text = f"Rupees {number_to_words(rupees)}"
    if paise:
        text += f" and {number_to_words(paise)} Paise"
    return text + " Only"
