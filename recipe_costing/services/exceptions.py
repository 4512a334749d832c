"""Service layer exception classes for the recipe costing core.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the costing, aggregation and history code.

Exception Hierarchy:
    ServiceError (base)
    ├── ConversionError
    ├── MissingExchangeRateError
    ├── CircularReferenceError
    │   └── RecipeDepthExceeded
    ├── ValidationError
    ├── RecipeNotFound
    ├── IngredientNotFound
    ├── VersionNotFound
    ├── PrepSheetNotFound
    └── DatabaseError

Propagation policy:
    - ConversionError is recovered per line during cost computation.
    - CircularReferenceError always reaches the caller and blocks the write.
    - MissingExchangeRateError and ValidationError fail the operation that
      raised them.
"""

from typing import Any, List, Optional, Sequence


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    pass


class ConversionError(ServiceError):
    """Raised when a quantity cannot be converted between two units.

    Args:
        from_unit: Source unit
        to_unit: Target unit
        reason: Optional detail (e.g. the two unit categories)

    Example:
        >>> raise ConversionError("g", "ml")
        ConversionError: Cannot convert g to ml: incompatible unit types
    """

    def __init__(self, from_unit: str, to_unit: str, reason: Optional[str] = None):
        self.from_unit = from_unit
        self.to_unit = to_unit
        self.reason = reason or "incompatible unit types"
        super().__init__(f"Cannot convert {from_unit} to {to_unit}: {self.reason}")


class MissingExchangeRateError(ServiceError):
    """Raised when the rate table has no entry for a required currency.

    Args:
        currency: The currency code without a rate

    Example:
        >>> raise MissingExchangeRateError("GBP")
        MissingExchangeRateError: No exchange rate found for GBP
    """

    def __init__(self, currency: str, base_currency: Optional[str] = None):
        self.currency = currency
        self.base_currency = base_currency
        if base_currency:
            message = f"No exchange rate found for {currency} (base {base_currency})"
        else:
            message = f"No exchange rate found for {currency}"
        super().__init__(message)


class CircularReferenceError(ServiceError):
    """Raised when a recipe composition would contain a cycle.

    Args:
        recipe_id: The recipe that would reach itself
        recipe_name: Its display name, when known
        path: Recipe ids along the discovered cycle, starting and ending
            with recipe_id

    Example:
        >>> raise CircularReferenceError(1, "Sauce", [1, 2, 1])
        CircularReferenceError: Circular reference detected: Recipe "Sauce" (path: 1 -> 2 -> 1)
    """

    def __init__(
        self,
        recipe_id: Any,
        recipe_name: Optional[str] = None,
        path: Optional[Sequence[Any]] = None,
        message: Optional[str] = None,
    ):
        self.recipe_id = recipe_id
        self.recipe_name = recipe_name
        self.path: List[Any] = list(path) if path else []
        if message is None:
            label = f'Recipe "{recipe_name}"' if recipe_name else f"Recipe {recipe_id}"
            message = f"Circular reference detected: {label}"
            if self.path:
                message += f" (path: {' -> '.join(str(p) for p in self.path)})"
        super().__init__(message)


class RecipeDepthExceeded(CircularReferenceError):
    """Raised when sub-recipe nesting goes deeper than the configured bound."""

    def __init__(self, recipe_id: Any, max_depth: int, path: Optional[Sequence[Any]] = None):
        self.max_depth = max_depth
        super().__init__(
            recipe_id,
            path=path,
            message=(
                f"Sub-recipe nesting exceeds maximum depth {max_depth} "
                f"at recipe {recipe_id}"
            ),
        )


class ValidationError(ServiceError):
    """Raised when data validation fails."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        error_msg = "; ".join(errors)
        super().__init__(f"Validation failed: {error_msg}")


class RecipeNotFound(ServiceError):
    """Raised when a recipe cannot be found by ID."""

    def __init__(self, recipe_id: Any):
        self.recipe_id = recipe_id
        super().__init__(f"Recipe with ID {recipe_id} not found")


class IngredientNotFound(ServiceError):
    """Raised when an ingredient cannot be found by ID."""

    def __init__(self, ingredient_id: Any):
        self.ingredient_id = ingredient_id
        super().__init__(f"Ingredient with ID {ingredient_id} not found")


class VersionNotFound(ServiceError):
    """Raised when a recipe version cannot be found."""

    def __init__(self, recipe_id: Any, version_number: int):
        self.recipe_id = recipe_id
        self.version_number = version_number
        super().__init__(f"Version {version_number} not found for recipe {recipe_id}")


class PrepSheetNotFound(ServiceError):
    """Raised when a saved prep sheet cannot be found by ID."""

    def __init__(self, prep_sheet_id: int):
        self.prep_sheet_id = prep_sheet_id
        super().__init__(f"Prep sheet with ID {prep_sheet_id} not found")


class DatabaseError(ServiceError):
    """Raised when a database operation fails."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
