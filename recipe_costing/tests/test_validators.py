"""
Tests for input validators.

Tests cover:
- Field-level validators
- Recipe line validation (exactly one reference, portion units)
- Whole recipe and ingredient validation
"""

from recipe_costing.utils.validators import (
    is_portion_unit,
    sanitize_string,
    validate_currency_code,
    validate_ingredient_data,
    validate_number_range,
    validate_positive_number,
    validate_recipe_data,
    validate_recipe_line,
    validate_required_string,
    validate_unit,
)


class TestFieldValidators:
    """Test single-field validators."""

    def test_required_string(self):
        """Test blank strings are rejected."""
        assert validate_required_string("Flour") == (True, "")
        assert validate_required_string("  ", "Name") == (False, "Name: This field is required")
        assert validate_required_string(None)[0] is False

    def test_positive_number(self):
        """Test zero, negatives and non-numbers are rejected."""
        assert validate_positive_number(0.5)[0]
        assert not validate_positive_number(0)[0]
        assert validate_positive_number("abc", "Qty") == (False, "Qty: Please enter a valid number")

    def test_number_range(self):
        """Test inclusive bounds."""
        assert validate_number_range(100, 0, 100)[0]
        assert not validate_number_range(100.1, 0, 100)[0]

    def test_unit(self):
        """Test units must be known to the converter."""
        assert validate_unit("kg")[0]
        assert validate_unit("Tablespoons")[0]
        assert validate_unit("sack") == (False, "Unit: Unknown unit 'sack'")

    def test_portion_units(self):
        """Test portion units are only accepted when allowed."""
        assert is_portion_unit("batches")
        assert not is_portion_unit("kg")
        assert not validate_unit("batch")[0]
        assert validate_unit("serving", allow_portion=True)[0]

    def test_currency_code(self):
        """Test three-letter codes."""
        assert validate_currency_code("eur")[0]
        assert not validate_currency_code("EURO")[0]
        assert not validate_currency_code("E1R")[0]

    def test_sanitize_string(self):
        """Test whitespace stripping."""
        assert sanitize_string("  Flour ") == "Flour"
        assert sanitize_string("   ") is None
        assert sanitize_string(None) is None


class TestRecipeLineValidation:
    """Test recipe line validation."""

    def test_valid_ingredient_line(self):
        """Test an ingredient line with a mass unit."""
        assert validate_recipe_line({"ingredient_id": 1, "quantity": 200, "unit": "g"}) == (
            True,
            [],
        )

    def test_valid_sub_recipe_line(self):
        """Test a sub-recipe line with a portion unit."""
        is_valid, _ = validate_recipe_line({"sub_recipe_id": 2, "quantity": 1, "unit": "batch"})
        assert is_valid

    def test_both_references(self):
        """Test a line referencing both an ingredient and a sub-recipe."""
        is_valid, errors = validate_recipe_line(
            {"ingredient_id": 1, "sub_recipe_id": 2, "quantity": 1, "unit": "g"}
        )
        assert not is_valid
        assert errors == ["Line must reference exactly one of ingredient or sub-recipe"]

    def test_no_reference(self):
        """Test a line referencing nothing."""
        is_valid, errors = validate_recipe_line({"quantity": 1, "unit": "g"})
        assert not is_valid
        assert len(errors) == 1

    def test_zero_quantity(self):
        """Test quantities must be positive."""
        _, errors = validate_recipe_line({"ingredient_id": 1, "quantity": 0, "unit": "g"})
        assert errors == ["Quantity: Value must be greater than zero"]

    def test_portion_unit_on_ingredient(self):
        """Test ingredient lines cannot use portion units."""
        _, errors = validate_recipe_line({"ingredient_id": 1, "quantity": 1, "unit": "batch"})
        assert errors == ["Unit: Unknown unit 'batch'"]

    def test_yield_percentage(self):
        """Test yield is accepted above 0 up to 100 on ingredient lines."""
        line = {"ingredient_id": 1, "quantity": 1, "unit": "kg"}
        assert validate_recipe_line(dict(line, yield_percentage=80))[0]
        assert validate_recipe_line(dict(line, yield_percentage=100))[0]

        for bad in (0, 101):
            is_valid, errors = validate_recipe_line(dict(line, yield_percentage=bad))
            assert not is_valid
            assert errors[0].startswith("Yield Percentage:")

    def test_yield_percentage_on_sub_recipe(self):
        """Test sub-recipe lines carry no yield."""
        _, errors = validate_recipe_line(
            {"sub_recipe_id": 2, "quantity": 1, "unit": "batch", "yield_percentage": 90}
        )
        assert errors == ["Yield Percentage: Applies to ingredient lines only"]


class TestRecipeValidation:
    """Test whole-recipe validation."""

    def test_valid_recipe(self):
        """Test a complete recipe."""
        is_valid, errors = validate_recipe_data(
            {
                "name": "Brownies",
                "servings": 12,
                "currency": "USD",
                "selling_price": "24.00",
                "target_cost_percentage": 30,
                "waste_buffer_percentage": 5,
                "yield_amount": 1.2,
                "yield_unit": "kg",
                "lines": [{"ingredient_id": 1, "quantity": 200, "unit": "g"}],
            }
        )
        assert is_valid, errors

    def test_yield_needs_unit(self):
        """Test a yield amount without a unit."""
        _, errors = validate_recipe_data({"name": "Stock", "servings": 1, "yield_amount": 2})
        assert errors == ["Yield Unit: This field is required"]

    def test_line_errors_numbered(self):
        """Test line errors name their line."""
        _, errors = validate_recipe_data(
            {
                "name": "Stock",
                "servings": 1,
                "lines": [
                    {"ingredient_id": 1, "quantity": 1, "unit": "l"},
                    {"ingredient_id": 2, "quantity": -1, "unit": "l"},
                ],
            }
        )
        assert errors == ["Line 2: Quantity: Must be between 0 and 999999.99"]

    def test_negative_price_and_bad_percentage(self):
        """Test pricing fields."""
        _, errors = validate_recipe_data(
            {"name": "Stock", "servings": 1, "selling_price": -1, "waste_buffer_percentage": 2000}
        )
        assert len(errors) == 2


class TestIngredientValidation:
    """Test whole-ingredient validation."""

    def test_valid_ingredient(self):
        """Test a complete ingredient."""
        assert validate_ingredient_data(
            {"name": "Flour", "unit": "kg", "price_per_unit": "2.50", "currency": "USD"}
        ) == (True, [])

    def test_invalid_ingredient(self):
        """Test every bad field is reported."""
        is_valid, errors = validate_ingredient_data(
            {"name": "", "unit": "sack", "price_per_unit": -1, "current_stock": -5}
        )
        assert not is_valid
        assert len(errors) == 4
