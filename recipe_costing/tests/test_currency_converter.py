"""
Unit tests for currency conversion.

Tests cover:
- Conversion through the base currency
- Identity conversion without a table lookup
- Missing rates
- Rate table normalisation and rebasing
- Round trips between USD, EUR and CUP
"""

from decimal import Decimal

import pytest

from recipe_costing.services.currency_converter import (
    convert_currency,
    default_rate_table,
    format_currency_amount,
    normalize_rate_table,
    rebase_rate_table,
    to_decimal,
)
from recipe_costing.services.exceptions import MissingExchangeRateError, ValidationError


class TestConvertCurrency:
    """Test convert_currency."""

    def test_eur_to_usd(self):
        """Test 50 EUR at 0.92 EUR per USD is about 54.35 USD."""
        result = convert_currency(Decimal("50"), "EUR", "USD", {"EUR": Decimal("0.92")}, "USD")
        assert result.quantize(Decimal("0.01")) == Decimal("54.35")

    def test_usd_to_eur(self):
        """Test base to foreign multiplies by the rate."""
        result = convert_currency(Decimal("100"), "USD", "EUR", {"USD": 1, "EUR": "0.92"})
        assert result == Decimal("92.00")

    def test_cross_rate(self):
        """Test conversion between two non-base currencies."""
        rates = {"USD": 1, "EUR": "0.5", "CUP": "24"}
        assert convert_currency(Decimal("1"), "EUR", "CUP", rates) == Decimal("48")

    def test_identity_needs_no_rate(self):
        """Test equal codes return the amount without consulting the table."""
        assert convert_currency(Decimal("7.25"), "GBP", "gbp", {}) == Decimal("7.25")

    def test_base_rate_implied(self):
        """Test the base currency needs no entry when base_currency is given."""
        result = convert_currency(Decimal("10"), "USD", "EUR", {"EUR": "0.9"}, "USD")
        assert result == Decimal("9.0")

    def test_missing_rate_raises(self):
        """Test an absent currency raises MissingExchangeRateError."""
        with pytest.raises(MissingExchangeRateError) as exc_info:
            convert_currency(Decimal("10"), "GBP", "USD", {"USD": 1})
        assert exc_info.value.currency == "GBP"

    def test_float_amount(self):
        """Test floats are converted without binary artefacts."""
        assert to_decimal(0.92) == Decimal("0.92")


ROUND_TRIP_RATES = {"USD": Decimal("1"), "EUR": Decimal("0.92"), "CUP": Decimal("24")}


class TestRoundTrips:
    """Test converting there and back returns the original amount."""

    @pytest.mark.parametrize(
        "from_currency, to_currency",
        [
            ("USD", "EUR"),
            ("EUR", "USD"),
            ("USD", "CUP"),
            ("CUP", "USD"),
            ("EUR", "CUP"),
            ("CUP", "EUR"),
        ],
    )
    def test_pair(self, from_currency, to_currency):
        """Test A to B to A for each pair of USD, EUR and CUP."""
        amount = Decimal("123.45")
        there = convert_currency(amount, from_currency, to_currency, ROUND_TRIP_RATES, "USD")
        back = convert_currency(there, to_currency, from_currency, ROUND_TRIP_RATES, "USD")
        assert back == pytest.approx(amount)

    def test_three_way_chain(self):
        """Test EUR to USD to CUP and back to EUR."""
        amount = Decimal("50")
        usd = convert_currency(amount, "EUR", "USD", ROUND_TRIP_RATES, "USD")
        cup = convert_currency(usd, "USD", "CUP", ROUND_TRIP_RATES, "USD")
        eur = convert_currency(cup, "CUP", "EUR", ROUND_TRIP_RATES, "USD")

        assert usd == pytest.approx(Decimal("54.3478"), abs=Decimal("0.0001"))
        assert cup == pytest.approx(Decimal("1304.3478"), abs=Decimal("0.0001"))
        assert eur == pytest.approx(amount)


class TestRateTables:
    """Test rate table normalisation and rebasing."""

    def test_normalize_adds_base(self):
        """Test codes are upper-cased and the base is set to 1."""
        table = normalize_rate_table("usd", {"eur": "0.92"})
        assert table == {"EUR": Decimal("0.92"), "USD": Decimal("1")}

    def test_normalize_rejects_bad_rates(self):
        """Test zero, negative and non-numeric rates are all reported."""
        with pytest.raises(ValidationError) as exc_info:
            normalize_rate_table("USD", {"EUR": 0, "GBP": "-1", "JPY": "abc"})
        assert len(exc_info.value.errors) == 3

    def test_normalize_rejects_base_override(self):
        """Test a base rate other than 1 is rejected."""
        with pytest.raises(ValidationError, match="must have rate 1"):
            normalize_rate_table("USD", {"USD": "1.1", "EUR": "0.92"})

    def test_rebase(self):
        """Test rebasing keeps cross rates and pins the new base at 1."""
        table = rebase_rate_table({"EUR": "0.5", "CUP": "24"}, "USD", "EUR")
        assert table["EUR"] == Decimal("1")
        assert table["USD"] == Decimal("2")
        assert table["CUP"] == Decimal("48")

    def test_rebase_unknown_currency(self):
        """Test rebasing onto a currency without a rate raises."""
        with pytest.raises(MissingExchangeRateError):
            rebase_rate_table({"EUR": "0.5"}, "USD", "GBP")

    def test_default_rate_table(self):
        """Test the built-in table is USD based."""
        table = default_rate_table()
        assert table["USD"] == Decimal("1.0")
        assert table["EUR"] == Decimal("0.92")


class TestFormatCurrencyAmount:
    """Test amount display."""

    def test_known_currency(self):
        """Test a catalogued currency uses its symbol."""
        assert format_currency_amount(Decimal("1234.5"), "USD") == "$1,234.50"

    def test_unknown_currency(self):
        """Test an unknown currency falls back to the code."""
        assert format_currency_amount(Decimal("12.5"), "gbp") == "12.50 GBP"
