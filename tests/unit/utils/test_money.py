"""Tests for exact money arithmetic and Argentine notation."""

from decimal import Decimal

import pytest

from aportes.utils.money import (
    add_amounts,
    amount_difference,
    amount_in_range,
    divide_amount,
    format_amount,
    format_ars,
    multiply_amount,
    parse_ars_amount,
    parse_thousands_comma_amount,
    percentage,
    round_amount,
    scaled_tolerance,
    to_decimal,
    within_tolerance,
)


class TestArithmetic:
    def test_float_sum_does_not_drift(self):
        assert add_amounts([0.1, 0.2]) == Decimal("0.30")

    def test_roster_sum_is_exact(self):
        assert add_amounts([53916.71, 838.64]) == Decimal("54755.35")

    def test_mixed_input_types(self):
        assert add_amounts(["100.10", 200, Decimal("0.05"), 0.85]) == Decimal("301.00")

    def test_round_half_up(self):
        assert round_amount("2.675") == Decimal("2.68")
        assert round_amount("-2.675") == Decimal("-2.68")

    def test_multiply_and_divide(self):
        assert multiply_amount(100000, "0.01") == Decimal("1000.00")
        assert divide_amount(100, 3) == Decimal("33.33")

    def test_divide_by_zero(self):
        with pytest.raises(ZeroDivisionError):
            divide_amount(10, 0)

    def test_difference_is_absolute(self):
        assert amount_difference(100, "100.50") == Decimal("0.50")

    def test_rejects_non_numeric(self):
        with pytest.raises(ValueError):
            to_decimal("abc")
        with pytest.raises(ValueError):
            to_decimal(True)
        with pytest.raises(ValueError):
            to_decimal("NaN")


class TestTolerance:
    def test_within_tolerance(self):
        assert within_tolerance(100.00, 100.01, 0.02) is True

    def test_outside_tolerance(self):
        assert within_tolerance(100.00, 100.05, 0.02) is False

    def test_scaled_tolerance(self):
        assert scaled_tolerance(100000) == Decimal("100.00")
        assert scaled_tolerance(100) == Decimal("1.00")

    def test_percentage_of_zero_total(self):
        assert percentage(50, 0) == Decimal("0.00")

    def test_percentage(self):
        assert percentage(25, 200) == Decimal("12.50")

    def test_amount_in_range(self):
        assert amount_in_range("50", 10, 100)
        assert not amount_in_range("5", 10, 100)


class TestArgentineNotation:
    def test_parse_with_symbol_and_grouping(self):
        assert parse_ars_amount("$ 54.755,35") == Decimal("54755.35")

    def test_parse_without_decimals(self):
        assert parse_ars_amount("1.234") == Decimal("1234.00")

    def test_parse_negative(self):
        assert parse_ars_amount("-1.000,50") == Decimal("-1000.50")

    @pytest.mark.parametrize("text", ["", "   ", "abc", "1,2,3"])
    def test_parse_rejects_garbage(self, text):
        with pytest.raises(ValueError):
            parse_ars_amount(text)

    def test_parse_bank_notation(self):
        assert parse_thousands_comma_amount("74,067.44") == Decimal("74067.44")

    def test_format(self):
        assert format_ars(54755.35) == "$ 54.755,35"
        assert format_amount(-1234.5) == "-1.234,50"
        assert format_amount(0) == "0,00"
