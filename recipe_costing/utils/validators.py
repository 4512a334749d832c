"""
Input validation functions for recipe costing data.

This module provides validation functions for data entering the store:
- Numeric validation (positive, non-negative, ranges)
- String validation (length, required fields)
- Unit and currency validation
- Whole-record validation for recipes, recipe lines and ingredients

Validators return (is_valid, error) tuples, or (is_valid, errors) for whole
records, and never raise. Callers decide whether to raise ValidationError.
"""

from typing import Any, List, Optional, Tuple

from recipe_costing.services.unit_converter import get_unit_type, normalize_unit
from recipe_costing.utils.constants import (
    ERROR_INVALID_NON_NEGATIVE,
    ERROR_INVALID_NUMBER,
    ERROR_INVALID_POSITIVE,
    ERROR_LINE_REFERENCE,
    ERROR_REQUIRED_FIELD,
    MAX_NAME_LENGTH,
    MAX_NOTES_LENGTH,
    MAX_PERCENTAGE,
    MAX_QUANTITY,
    MAX_UNIT_LENGTH,
    MAX_YIELD_PERCENTAGE,
    PORTION_UNIT_ALIASES,
    PORTION_UNITS,
    UNIT_TYPE_UNKNOWN,
)


def validate_required_string(value: Optional[str], field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a string field is not empty.

    Args:
        value: The string value to validate
        field_name: Name of the field for error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return False, f"{field_name}: {ERROR_REQUIRED_FIELD}"
    return True, ""


def validate_string_length(
    value: Optional[str], max_length: int, field_name: str = "Field"
) -> Tuple[bool, str]:
    if value and len(value) > max_length:
        return False, f"{field_name}: Must be {max_length} characters or less"
    return True, ""


def validate_positive_number(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a value is a positive number (> 0).

    Args:
        value: The value to validate
        field_name: Name of the field for error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        num_value = float(value)
    except (ValueError, TypeError):
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if num_value <= 0:
        return False, f"{field_name}: {ERROR_INVALID_POSITIVE}"
    return True, ""


def validate_non_negative_number(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    try:
        num_value = float(value)
    except (ValueError, TypeError):
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if num_value < 0:
        return False, f"{field_name}: {ERROR_INVALID_NON_NEGATIVE}"
    return True, ""


def validate_number_range(
    value: Any, min_value: float, max_value: float, field_name: str = "Field"
) -> Tuple[bool, str]:
    """
    Validate that a number is within a closed range.

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        num_value = float(value)
    except (ValueError, TypeError):
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if num_value < min_value or num_value > max_value:
        return False, f"{field_name}: Must be between {min_value} and {max_value}"
    return True, ""


def is_portion_unit(unit: Optional[str]) -> bool:
    """True for "batch"/"serving" and their aliases."""
    norm = normalize_unit(unit)
    return norm in PORTION_UNITS or norm in PORTION_UNIT_ALIASES


def validate_unit(
    unit: Optional[str], field_name: str = "Unit", allow_portion: bool = False
) -> Tuple[bool, str]:
    """
    Validate that a unit is known to the converter.

    Args:
        unit: Unit string
        field_name: Name of the field for error messages
        allow_portion: Also accept "batch"/"serving" (sub-recipe lines)

    Returns:
        Tuple of (is_valid, error_message)
    """
    is_valid, error = validate_required_string(unit, field_name)
    if not is_valid:
        return is_valid, error
    is_valid, error = validate_string_length(unit, MAX_UNIT_LENGTH, field_name)
    if not is_valid:
        return is_valid, error
    if allow_portion and is_portion_unit(unit):
        return True, ""
    if get_unit_type(unit) == UNIT_TYPE_UNKNOWN:
        return False, f"{field_name}: Unknown unit '{unit}'"
    return True, ""


def validate_currency_code(code: Optional[str], field_name: str = "Currency") -> Tuple[bool, str]:
    is_valid, error = validate_required_string(code, field_name)
    if not is_valid:
        return is_valid, error
    stripped = code.strip()
    if len(stripped) != 3 or not stripped.isalpha():
        return False, f"{field_name}: Must be a three-letter currency code"
    return True, ""


def validate_recipe_line(data: dict) -> Tuple[bool, List[str]]:
    """
    Validate one recipe line.

    A line must reference exactly one of an ingredient or a sub-recipe and
    carry a positive quantity with a unit. Sub-recipe lines may use the
    portion units "batch" and "serving".

    Args:
        data: Dictionary with ingredient_id, sub_recipe_id, quantity, unit
            and optional yield_percentage

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    ingredient_id = data.get("ingredient_id")
    sub_recipe_id = data.get("sub_recipe_id")
    if (ingredient_id is None) == (sub_recipe_id is None):
        errors.append(ERROR_LINE_REFERENCE)

    is_valid, error = validate_number_range(data.get("quantity"), 0, MAX_QUANTITY, "Quantity")
    if not is_valid:
        errors.append(error)
    else:
        is_valid, error = validate_positive_number(data.get("quantity"), "Quantity")
        if not is_valid:
            errors.append(error)

    is_valid, error = validate_unit(
        data.get("unit"), "Unit", allow_portion=sub_recipe_id is not None
    )
    if not is_valid:
        errors.append(error)

    yield_percentage = data.get("yield_percentage")
    if yield_percentage is not None:
        if sub_recipe_id is not None:
            errors.append("Yield Percentage: Applies to ingredient lines only")
        else:
            is_valid, error = validate_number_range(
                yield_percentage, 0, MAX_YIELD_PERCENTAGE, "Yield Percentage"
            )
            if is_valid:
                is_valid, error = validate_positive_number(yield_percentage, "Yield Percentage")
            if not is_valid:
                errors.append(error)

    return len(errors) == 0, errors


def validate_recipe_data(data: dict) -> Tuple[bool, List[str]]:  # noqa: C901
    """
    Validate all fields for a recipe, including its lines.

    Args:
        data: Dictionary containing recipe fields. ``lines`` is an optional
            list of line dictionaries (see validate_recipe_line).

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    is_valid, error = validate_required_string(data.get("name"), "Recipe Name")
    if not is_valid:
        errors.append(error)
    else:
        is_valid, error = validate_string_length(data.get("name"), MAX_NAME_LENGTH, "Recipe Name")
        if not is_valid:
            errors.append(error)

    is_valid, error = validate_positive_number(data.get("servings"), "Servings")
    if not is_valid:
        errors.append(error)

    if data.get("currency") is not None:
        is_valid, error = validate_currency_code(data.get("currency"))
        if not is_valid:
            errors.append(error)

    if data.get("selling_price") is not None:
        is_valid, error = validate_non_negative_number(data.get("selling_price"), "Selling Price")
        if not is_valid:
            errors.append(error)

    for key, label in (
        ("target_cost_percentage", "Target Cost %"),
        ("waste_buffer_percentage", "Waste Buffer %"),
    ):
        if data.get(key) is not None:
            is_valid, error = validate_number_range(data.get(key), 0, MAX_PERCENTAGE, label)
            if not is_valid:
                errors.append(error)

    # Yield amount and unit go together
    if data.get("yield_amount") is not None:
        is_valid, error = validate_positive_number(data.get("yield_amount"), "Yield Amount")
        if not is_valid:
            errors.append(error)
        is_valid, error = validate_unit(data.get("yield_unit"), "Yield Unit")
        if not is_valid:
            errors.append(error)

    if data.get("prep_time_minutes") is not None:
        is_valid, error = validate_non_negative_number(data.get("prep_time_minutes"), "Prep Time")
        if not is_valid:
            errors.append(error)

    if data.get("description"):
        is_valid, error = validate_string_length(
            data.get("description"), MAX_NOTES_LENGTH, "Description"
        )
        if not is_valid:
            errors.append(error)

    for index, line in enumerate(data.get("lines") or [], start=1):
        is_valid, line_errors = validate_recipe_line(line)
        if not is_valid:
            errors.extend(f"Line {index}: {e}" for e in line_errors)

    return len(errors) == 0, errors


def validate_ingredient_data(data: dict) -> Tuple[bool, List[str]]:
    """
    Validate all fields for an ingredient.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    is_valid, error = validate_required_string(data.get("name"), "Ingredient Name")
    if not is_valid:
        errors.append(error)
    else:
        is_valid, error = validate_string_length(
            data.get("name"), MAX_NAME_LENGTH, "Ingredient Name"
        )
        if not is_valid:
            errors.append(error)

    is_valid, error = validate_unit(data.get("unit"), "Unit")
    if not is_valid:
        errors.append(error)

    is_valid, error = validate_non_negative_number(data.get("price_per_unit"), "Price Per Unit")
    if not is_valid:
        errors.append(error)

    if data.get("currency") is not None:
        is_valid, error = validate_currency_code(data.get("currency"))
        if not is_valid:
            errors.append(error)

    if data.get("current_stock") is not None:
        is_valid, error = validate_non_negative_number(data.get("current_stock"), "Current Stock")
        if not is_valid:
            errors.append(error)

    return len(errors) == 0, errors


def sanitize_string(value: Optional[str]) -> Optional[str]:
    """
    Strip whitespace and turn empty strings into None.
    """
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None
