"""Tests for GST split and totals."""

from decimal import Decimal

import pytest

from billgen.domain.errors import EmptyItemSet, InvalidAmount
from billgen.domain.services.tax_calculator import (
    NO_TAX,
    TaxSplit,
    compute_grand_total,
    compute_line_amount,
    compute_tax,
    compute_totals,
    is_inter_state,
    reconciles,
    to_decimal,
)


class TestLineAmount:
    def test_quantity_times_rate(self):
        assert compute_line_amount(100, 425) == Decimal("42500.00")

    def test_rounds_half_up(self):
        # 2.5 × 0.333 = 0.8325 -> 0.83 ; 3 × 0.335 = 1.005 -> 1.01
        assert compute_line_amount("2.5", "0.333") == Decimal("0.83")
        assert compute_line_amount(3, "0.335") == Decimal("1.01")

    @pytest.mark.parametrize("quantity,rate,field", [
        (0, 10, "quantity"),
        (-1, 10, "quantity"),
        (5, 0, "rate"),
        (5, -2, "rate"),
    ])
    def test_non_positive_rejected(self, quantity, rate, field):
        with pytest.raises(InvalidAmount) as exc:
            compute_line_amount(quantity, rate)
        assert exc.value.field == field

    @pytest.mark.parametrize("bad", ["abc", None, True, float("inf"), "NaN"])
    def test_non_numeric_rejected(self, bad):
        with pytest.raises(InvalidAmount):
            compute_line_amount(bad, 10)


class TestTotals:
    def test_sum_of_lines(self):
        items = [
            {"quantity": 100, "rate": 425},
            {"quantity": "2.5", "rate": "80"},
        ]
        assert compute_totals(items) == Decimal("42700.00")

    def test_empty_items(self):
        with pytest.raises(EmptyItemSet):
            compute_totals([])


class TestComputeTax:
    def test_intra_state_split(self):
        split = compute_tax(42500, is_inter_state=False)
        assert split == TaxSplit(sgst=Decimal("3825.00"), cgst=Decimal("3825.00"))
        assert split.igst is None
        assert compute_grand_total(42500, split) == Decimal("50150.00")

    def test_inter_state_igst(self):
        split = compute_tax(42500, is_inter_state=True)
        assert split.igst == Decimal("7650.00")
        assert split.sgst is None and split.cgst is None
        assert compute_grand_total(42500, split) == Decimal("50150.00")

    def test_halves_rounded_independently(self):
        split = compute_tax("0.05", is_inter_state=False)
        # 0.05 × 0.09 = 0.0045 -> 0.00 each
        assert split.sgst == Decimal("0.00")
        assert split.cgst == Decimal("0.00")

    def test_custom_rate(self):
        split = compute_tax(1000, is_inter_state=True, rate=Decimal("0.05"))
        assert split.igst == Decimal("50.00")

    def test_negative_base_rejected(self):
        with pytest.raises(InvalidAmount):
            compute_tax(-1, is_inter_state=False)

    def test_zero_base(self):
        split = compute_tax(0, is_inter_state=False)
        assert split.total == Decimal("0.00")


class TestHelpers:
    def test_no_tax_is_empty(self):
        assert NO_TAX.is_empty
        assert NO_TAX.total == Decimal("0")

    @pytest.mark.parametrize("party,company,expected", [
        ("29", "29", False),
        ("27", "29", True),
        (None, "29", False),
        ("", "29", False),
        (" 29 ", "29", False),
    ])
    def test_is_inter_state(self, party, company, expected):
        assert is_inter_state(party, company) is expected

    def test_reconciles_within_tolerance(self):
        split = TaxSplit(sgst=Decimal("2250"), cgst=Decimal("2250"))
        assert reconciles(Decimal("25000"), split, Decimal("29500"))
        assert reconciles(Decimal("25000"), split, Decimal("29500.01"))
        assert not reconciles(Decimal("25000"), split, Decimal("29500.02"))

    def test_to_decimal_keeps_precision(self):
        assert to_decimal("0.1") + to_decimal("0.2") == Decimal("0.3")


class TestAmountCeiling:
    def test_largest_storable_amount_accepted(self):
        assert to_decimal("999999999999.99") == Decimal("999999999999.99")

    @pytest.mark.parametrize("value", [Decimal("1e30"), 1e30, "1000000000000"])
    def test_above_ceiling_rejected(self, value):
        with pytest.raises(InvalidAmount) as exc:
            to_decimal(value, "totalAmount")
        assert exc.value.field == "totalAmount"

    def test_line_amount_above_ceiling(self):
        with pytest.raises(InvalidAmount) as exc:
            compute_line_amount(10**7, 10**6)
        assert exc.value.field == "amount"

    def test_grand_total_above_ceiling(self):
        with pytest.raises(InvalidAmount) as exc:
            compute_grand_total(Decimal("999999999999.99"), TaxSplit(igst=Decimal("1")))
        assert exc.value.field == "totalAmount"
