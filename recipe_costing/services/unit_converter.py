"""
Unit conversion for recipe quantities.

This module provides:
- Unit normalisation (case, whitespace, spelled-out aliases)
- Unit category detection (mass, volume, length, count)
- Same-category conversion through a base unit
- Conversion display helpers

Conversion Strategy:
- Mass units convert through grams (base unit)
- Volume units convert through milliliters (base unit)
- Length units convert through meters (base unit)
- Count units ("each", "piece", ...) are 1:1 equivalents; they have no
  numeric base and never convert to mass or volume
- Anything across categories raises ConversionError
"""

from typing import Dict, Optional

from recipe_costing.services.exceptions import ConversionError
from recipe_costing.utils.constants import (
    COUNT_UNITS,
    UNIT_ALIASES,
    UNIT_TYPE_COUNT,
    UNIT_TYPE_LENGTH,
    UNIT_TYPE_MASS,
    UNIT_TYPE_UNKNOWN,
    UNIT_TYPE_VOLUME,
)


# ============================================================================
# Standard Conversion Tables
# ============================================================================

# Mass conversions to grams (base unit)
MASS_TO_GRAMS: Dict[str, float] = {
    "mg": 0.001,
    "g": 1.0,
    "kg": 1000.0,
    "oz": 28.3495,
    "lb": 453.592,
}

# Volume conversions to milliliters (base unit)
VOLUME_TO_ML: Dict[str, float] = {
    "ml": 1.0,
    "cl": 10.0,
    "dl": 100.0,
    "l": 1000.0,
    "tsp": 5.0,
    "tbsp": 15.0,
    "fl oz": 29.5735,
    "cup": 236.588,
    "pt": 473.176,
    "qt": 946.353,
    "gal": 3785.41,
}

# Length conversions to meters (base unit)
LENGTH_TO_METERS: Dict[str, float] = {
    "mm": 0.001,
    "cm": 0.01,
    "m": 1.0,
    "in": 0.0254,
    "ft": 0.3048,
    "yd": 0.9144,
}

# Count units: equivalence set, not a numeric table
COUNT_EQUIVALENTS = frozenset(COUNT_UNITS)

_MULTIPLIER_TABLES = {
    UNIT_TYPE_MASS: MASS_TO_GRAMS,
    UNIT_TYPE_VOLUME: VOLUME_TO_ML,
    UNIT_TYPE_LENGTH: LENGTH_TO_METERS,
}


# ============================================================================
# Unit Type Detection
# ============================================================================


def normalize_unit(unit: Optional[str]) -> str:
    """
    Normalise a unit string to its canonical symbol.

    Lower-cases, trims and collapses inner whitespace, then resolves
    spelled-out aliases ("grams" -> "g"). Unknown units are returned in
    their normalised spelling.

    Args:
        unit: Unit string (e.g., "Grams", " fl  oz ")

    Returns:
        Canonical unit symbol
    """
    if unit is None:
        return ""
    cleaned = " ".join(unit.strip().lower().split())
    return UNIT_ALIASES.get(cleaned, cleaned)


def get_unit_type(unit: str) -> str:
    """
    Determine the category of a unit.

    Args:
        unit: Unit string

    Returns:
        "mass", "volume", "length", "count", or "unknown"
    """
    unit_norm = normalize_unit(unit)

    if unit_norm in MASS_TO_GRAMS:
        return UNIT_TYPE_MASS
    elif unit_norm in VOLUME_TO_ML:
        return UNIT_TYPE_VOLUME
    elif unit_norm in LENGTH_TO_METERS:
        return UNIT_TYPE_LENGTH
    elif unit_norm in COUNT_EQUIVALENTS:
        return UNIT_TYPE_COUNT

    return UNIT_TYPE_UNKNOWN


def units_compatible(unit1: str, unit2: str) -> bool:
    """
    Check if two units can be converted into each other.

    Identical units are always compatible, even when unknown.

    Args:
        unit1: First unit
        unit2: Second unit

    Returns:
        True if a conversion between the units exists
    """
    if normalize_unit(unit1) == normalize_unit(unit2):
        return True

    type1 = get_unit_type(unit1)
    type2 = get_unit_type(unit2)

    if type1 == UNIT_TYPE_UNKNOWN or type2 == UNIT_TYPE_UNKNOWN:
        return False

    return type1 == type2


# ============================================================================
# Conversion
# ============================================================================


def convert_units(quantity: float, from_unit: str, to_unit: str) -> float:
    """
    Convert a quantity between two units of the same category.

    Args:
        quantity: Quantity to convert
        from_unit: Source unit (e.g., "kg")
        to_unit: Target unit (e.g., "g")

    Returns:
        Converted quantity. The input is returned unchanged when both units
        normalise to the same symbol.

    Raises:
        ConversionError: If either unit is unknown or the categories differ
    """
    from_norm = normalize_unit(from_unit)
    to_norm = normalize_unit(to_unit)

    if from_norm == to_norm:
        return quantity

    from_type = get_unit_type(from_norm)
    to_type = get_unit_type(to_norm)

    if from_type == UNIT_TYPE_UNKNOWN:
        raise ConversionError(from_unit, to_unit, f"unknown unit '{from_unit}'")
    if to_type == UNIT_TYPE_UNKNOWN:
        raise ConversionError(from_unit, to_unit, f"unknown unit '{to_unit}'")
    if from_type != to_type:
        raise ConversionError(
            from_unit,
            to_unit,
            f"incompatible unit types ({from_type} to {to_type})",
        )

    if from_type == UNIT_TYPE_COUNT:
        return quantity

    table = _MULTIPLIER_TABLES[from_type]
    base_value = quantity * table[from_norm]
    return base_value / table[to_norm]


def try_convert_units(quantity: float, from_unit: str, to_unit: str) -> Optional[float]:
    """
    Convert a quantity, returning None instead of raising on failure.

    Args:
        quantity: Quantity to convert
        from_unit: Source unit
        to_unit: Target unit

    Returns:
        Converted quantity, or None if the units are not convertible
    """
    try:
        return convert_units(quantity, from_unit, to_unit)
    except ConversionError:
        return None


def format_conversion(value: float, from_unit: str, to_unit: str, precision: int = 2) -> str:
    """
    Format a unit conversion for display.

    Args:
        value: Source quantity
        from_unit: Source unit
        to_unit: Target unit
        precision: Decimal places for result

    Returns:
        Formatted string (e.g., "1 kg = 1000.00 g"), or "Error: ..." if the
        conversion fails
    """
    try:
        converted = convert_units(value, from_unit, to_unit)
    except ConversionError as e:
        return f"Error: {e}"

    return f"{value:g} {from_unit} = {converted:.{precision}f} {to_unit}"
