"""
Constants for the recipe costing core.

This module defines all system-wide constants including:
- Application metadata
- Unit catalogues (mass, volume, length, count) and recipe portion units
- Currency catalogue and costing defaults
- Field limits and error messages shared by validators
"""

from typing import Dict, List

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Recipe Costing"
APP_VERSION = "0.1.0"
DATABASE_VERSION = "1.0"
DATABASE_FILENAME = "recipe_costing.db"

# ============================================================================
# Unit Types
# ============================================================================

UNIT_TYPE_MASS = "mass"
UNIT_TYPE_VOLUME = "volume"
UNIT_TYPE_LENGTH = "length"
UNIT_TYPE_COUNT = "count"
UNIT_TYPE_UNKNOWN = "unknown"

# Mass units
MASS_UNITS: List[str] = [
    "mg",  # Milligram
    "g",  # Gram
    "kg",  # Kilogram
    "oz",  # Ounce
    "lb",  # Pound
]

# Volume units
VOLUME_UNITS: List[str] = [
    "ml",  # Milliliter
    "cl",  # Centiliter
    "dl",  # Deciliter
    "l",  # Liter
    "tsp",  # Teaspoon
    "tbsp",  # Tablespoon
    "fl oz",  # Fluid ounce
    "cup",  # Cup
    "pt",  # Pint
    "qt",  # Quart
    "gal",  # Gallon
]

# Length units
LENGTH_UNITS: List[str] = ["mm", "cm", "m", "in", "ft", "yd"]

# Count units are 1:1 equivalents of each other, nothing else
COUNT_UNITS: List[str] = ["each", "ea", "piece", "pc", "unit", "count"]

# Spelled-out or plural spellings mapped onto the canonical symbol
UNIT_ALIASES: Dict[str, str] = {
    "milligram": "mg",
    "milligrams": "mg",
    "gram": "g",
    "grams": "g",
    "kilogram": "kg",
    "kilograms": "kg",
    "ounce": "oz",
    "ounces": "oz",
    "pound": "lb",
    "pounds": "lb",
    "lbs": "lb",
    "milliliter": "ml",
    "milliliters": "ml",
    "liter": "l",
    "liters": "l",
    "litre": "l",
    "litres": "l",
    "teaspoon": "tsp",
    "teaspoons": "tsp",
    "tablespoon": "tbsp",
    "tablespoons": "tbsp",
    "cups": "cup",
    "pint": "pt",
    "pints": "pt",
    "quart": "qt",
    "quarts": "qt",
    "gallon": "gal",
    "gallons": "gal",
    "floz": "fl oz",
    "pieces": "piece",
    "pcs": "pc",
    "units": "unit",
}

# Recipe portion units: how a sub-recipe line expresses its share of the
# sub-recipe's yield
PORTION_UNIT_BATCH = "batch"
PORTION_UNIT_SERVING = "serving"
PORTION_UNITS: List[str] = [PORTION_UNIT_BATCH, PORTION_UNIT_SERVING]
PORTION_UNIT_ALIASES: Dict[str, str] = {
    "batches": PORTION_UNIT_BATCH,
    "servings": PORTION_UNIT_SERVING,
    "portion": PORTION_UNIT_SERVING,
    "portions": PORTION_UNIT_SERVING,
}

# ============================================================================
# Currencies
# ============================================================================

DEFAULT_BASE_CURRENCY = "USD"

# Rates are units of the currency per 1 USD
CURRENCIES: Dict[str, Dict[str, object]] = {
    "USD": {"symbol": "$", "rate": "1.0", "name": "US Dollar", "decimal_places": 2},
    "EUR": {"symbol": "€", "rate": "0.92", "name": "Euro", "decimal_places": 2},
    "CUP": {"symbol": "₱", "rate": "24.0", "name": "Cuban Peso", "decimal_places": 2},
}

# ============================================================================
# Costing Defaults
# ============================================================================

DEFAULT_WASTE_BUFFER_PERCENTAGE = 0.0
DEFAULT_MAX_RECIPE_DEPTH = 32

CURRENCY_DECIMAL_PLACES = 2

# ============================================================================
# Field Limits
# ============================================================================

MAX_NAME_LENGTH = 200
MAX_UNIT_LENGTH = 50
MAX_NOTES_LENGTH = 2000
MAX_QUANTITY = 999999.99
MAX_PERCENTAGE = 1000.0
MAX_YIELD_PERCENTAGE = 100.0

# ============================================================================
# Error Messages
# ============================================================================

ERROR_REQUIRED_FIELD = "This field is required"
ERROR_INVALID_NUMBER = "Please enter a valid number"
ERROR_INVALID_POSITIVE = "Value must be greater than zero"
ERROR_INVALID_NON_NEGATIVE = "Value must be zero or greater"
ERROR_LINE_REFERENCE = "Line must reference exactly one of ingredient or sub-recipe"

# ============================================================================
# Date Formats
# ============================================================================

DATE_FORMAT = "%Y-%m-%d"
