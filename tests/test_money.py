"""Money arithmetic -- pure functions, no database."""
from decimal import Decimal

import pytest

from utils.money import (
    CANCELLED,
    PAID,
    PARTIAL,
    PENDING,
    compute_totals,
    derive_status,
    line_total,
    prorate,
    quantize,
    to_decimal,
    totals_from_subtotal,
)

D = Decimal


class TestLineTotal:

    def test_quantity_times_price_minus_discount(self):
        assert line_total({"quantity": 2, "unit_price": "150000", "item_discount": "10000"}) == D("290000")

    @pytest.mark.parametrize("qty", [None, 0, -3, "abc"])
    def test_invalid_quantity_counts_as_one(self, qty):
        assert line_total({"quantity": qty, "unit_price": "50000"}) == D("50000")

    def test_works_with_objects(self):
        class Item:
            quantity = D("1.5")
            unit_price = D("1000")
            item_discount = D("0")
        assert line_total(Item()) == D("1500")


class TestToDecimal:

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == D("0.1")

    def test_empty_values_use_default(self):
        assert to_decimal(None) == D("0")
        assert to_decimal("", default=D("1")) == D("1")


class TestTotals:

    def test_pph_is_withheld_from_discounted_subtotal(self):
        t = compute_totals([{"quantity": 1, "unit_price": "1000000"}], pph_percent=2)
        assert t.subtotal == D("1000000.00")
        assert t.pph_amount == D("20000.00")
        assert t.total_tagihan == D("980000.00")
        assert t.remaining_amount == D("980000.00")
        assert t.status == PENDING

    def test_discount_applies_before_pph(self):
        t = compute_totals([{"unit_price": "1000000"}], discount_amount="100000", pph_percent="2")
        assert t.pph_amount == D("18000.00")
        assert t.total_tagihan == D("882000.00")

    def test_discount_larger_than_subtotal_floors_at_zero(self):
        t = compute_totals([{"unit_price": "100"}], discount_amount="500")
        assert t.total_tagihan == D("0.00")

    def test_rounding_happens_only_on_final_values(self):
        # pph = 100.005 * 50% = 50.0025 (ไม่ใช่ 100.01 * 50% = 50.005)
        t = compute_totals([{"unit_price": "100.005"}], pph_percent=50)
        assert t.subtotal == D("100.01")
        assert t.pph_amount == D("50.00")
        assert t.total_tagihan == D("50.00")

    def test_amount_override_used_when_no_items(self):
        t = compute_totals([], amount_override="750000")
        assert t.subtotal == D("750000.00")
        assert t.total_tagihan == D("750000.00")

    def test_items_take_precedence_over_override(self):
        t = compute_totals([{"unit_price": "200000"}], amount_override="750000")
        assert t.total_tagihan == D("200000.00")

    def test_overpayment_leaves_zero_remaining(self):
        t = totals_from_subtotal("100000", paid="150000")
        assert t.remaining_amount == D("0.00")
        assert t.status == PAID


class TestStatus:

    @pytest.mark.parametrize("paid,remaining,expected", [
        ("0", "100", PENDING),
        ("50", "50", PARTIAL),
        ("100", "0", PAID),
        ("0", "0", PENDING),
    ])
    def test_derived_from_paid_and_remaining(self, paid, remaining, expected):
        assert derive_status(paid, remaining) == expected

    def test_cancelled_is_sticky(self):
        assert derive_status("100", "0", CANCELLED) == CANCELLED


class TestProrate:

    def test_share_of_remaining_by_nominal(self):
        assert prorate("600000", "1000000", "500000") == D("300000.00")

    def test_zero_subtotal_returns_remaining(self):
        assert prorate("600000", "0", "12345.678") == quantize("12345.678")
