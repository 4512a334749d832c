"""
Unit tests for the unit conversion system.

Tests cover:
- Unit normalisation and category detection
- Same-category conversions (mass, volume, length, count)
- Rejection of cross-category and unknown conversions
- Round trips over every unit pair
- Display helpers
"""

from itertools import permutations

import pytest

from recipe_costing.services.exceptions import ConversionError
from recipe_costing.services.unit_converter import (
    LENGTH_TO_METERS,
    MASS_TO_GRAMS,
    VOLUME_TO_ML,
    convert_units,
    format_conversion,
    get_unit_type,
    normalize_unit,
    try_convert_units,
    units_compatible,
)
from recipe_costing.utils.constants import COUNT_UNITS, LENGTH_UNITS, MASS_UNITS, VOLUME_UNITS


# ============================================================================
# Unit Type Detection Tests
# ============================================================================


class TestUnitTypeDetection:
    """Test unit normalisation and category detection."""

    def test_normalize_unit_case_and_whitespace(self):
        """Test units are lower-cased and whitespace collapsed."""
        assert normalize_unit(" KG ") == "kg"
        assert normalize_unit("Fl   Oz") == "fl oz"

    def test_normalize_unit_aliases(self):
        """Test spelled-out units map onto their symbols."""
        assert normalize_unit("Grams") == "g"
        assert normalize_unit("litres") == "l"
        assert normalize_unit("lbs") == "lb"

    def test_normalize_unit_none(self):
        """Test None normalises to an empty string."""
        assert normalize_unit(None) == ""

    def test_get_unit_type(self):
        """Test category detection for each unit family."""
        assert get_unit_type("g") == "mass"
        assert get_unit_type("cup") == "volume"
        assert get_unit_type("cm") == "length"
        assert get_unit_type("each") == "count"
        assert get_unit_type("bag") == "unknown"

    def test_units_compatible(self):
        """Test compatibility follows the unit category."""
        assert units_compatible("kg", "oz")
        assert units_compatible("tsp", "l")
        assert not units_compatible("g", "ml")
        assert not units_compatible("each", "g")

    def test_identical_unknown_units_compatible(self):
        """Test an unknown unit is still compatible with itself."""
        assert units_compatible("bag", "Bag")
        assert not units_compatible("bag", "box")


# ============================================================================
# Conversion Tests
# ============================================================================


class TestConvertUnits:
    """Test quantity conversion between units."""

    def test_mass_conversion(self):
        """Test kilograms to grams and back."""
        assert convert_units(2, "kg", "g") == pytest.approx(2000)
        assert convert_units(500, "g", "kg") == pytest.approx(0.5)

    def test_imperial_mass(self):
        """Test pounds to ounces."""
        assert convert_units(1, "lb", "oz") == pytest.approx(16.0, rel=1e-4)

    def test_volume_conversion(self):
        """Test tablespoons to teaspoons and cups to milliliters."""
        assert convert_units(1, "tbsp", "tsp") == pytest.approx(3.0)
        assert convert_units(2, "cup", "ml") == pytest.approx(473.176)

    def test_length_conversion(self):
        """Test inches to centimeters."""
        assert convert_units(10, "in", "cm") == pytest.approx(25.4)

    def test_count_units_are_equivalent(self):
        """Test count units convert 1:1."""
        assert convert_units(12, "each", "piece") == 12

    def test_same_unit_returns_input(self):
        """Test same-unit conversion returns the quantity unchanged."""
        assert convert_units(3.5, "Grams", "g") == 3.5
        assert convert_units(3, "bag", "bag") == 3

    def test_cross_category_raises(self):
        """Test mass to volume raises ConversionError."""
        with pytest.raises(ConversionError) as exc_info:
            convert_units(100, "g", "ml")
        assert exc_info.value.from_unit == "g"
        assert exc_info.value.to_unit == "ml"
        assert "mass to volume" in str(exc_info.value)

    def test_count_to_mass_raises(self):
        """Test count units never convert to mass."""
        with pytest.raises(ConversionError):
            convert_units(2, "each", "g")

    def test_unknown_unit_raises(self):
        """Test an unknown unit raises ConversionError naming it."""
        with pytest.raises(ConversionError, match="unknown unit 'bag'"):
            convert_units(1, "bag", "kg")

    def test_try_convert_units(self):
        """Test the non-raising variant."""
        assert try_convert_units(1, "kg", "g") == pytest.approx(1000)
        assert try_convert_units(1, "kg", "ml") is None


# ============================================================================
# Round Trip Tests
# ============================================================================


def _pairs(table):
    return list(permutations(table, 2))


class TestRoundTrips:
    """Test converting there and back returns the original quantity."""

    @pytest.mark.parametrize(
        "from_unit, to_unit",
        _pairs(MASS_TO_GRAMS) + _pairs(VOLUME_TO_ML) + _pairs(LENGTH_TO_METERS),
    )
    def test_measured_units(self, from_unit, to_unit):
        """Test every ordered pair within a measured category."""
        there = convert_units(12.5, from_unit, to_unit)
        assert convert_units(there, to_unit, from_unit) == pytest.approx(12.5)

    @pytest.mark.parametrize("from_unit, to_unit", _pairs(COUNT_UNITS))
    def test_count_units(self, from_unit, to_unit):
        """Test count units convert one to one in both directions."""
        assert convert_units(7, from_unit, to_unit) == pytest.approx(7)
        assert convert_units(convert_units(7, from_unit, to_unit), to_unit, from_unit) == 7

    @pytest.mark.parametrize(
        "units, table",
        [(MASS_UNITS, MASS_TO_GRAMS), (VOLUME_UNITS, VOLUME_TO_ML), (LENGTH_UNITS, LENGTH_TO_METERS)],
    )
    def test_every_listed_unit_has_a_factor(self, units, table):
        """Test the unit lists and conversion tables agree."""
        assert sorted(units) == sorted(table)

    def test_base_factors(self):
        """Test each base unit converts to itself with factor one."""
        assert convert_units(3, "g", "g") == 3
        assert convert_units(1, "l", "ml") == pytest.approx(1000)
        assert convert_units(1, "m", "cm") == pytest.approx(100)


class TestFormatConversion:
    """Test conversion display."""

    def test_format_conversion(self):
        """Test a successful conversion string."""
        assert format_conversion(1, "kg", "g") == "1 kg = 1000.00 g"

    def test_format_conversion_error(self):
        """Test a failed conversion string."""
        assert format_conversion(1, "kg", "ml").startswith("Error: Cannot convert kg to ml")
