"""Collaborator interfaces consumed by the costing core.

The core owns no storage. Everything it reads or writes goes through these
protocols, which the caller constructs and passes in. ``sql_store`` provides
a SQLAlchemy implementation; tests supply in-memory fakes.
"""

from decimal import Decimal
from typing import Any, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

from recipe_costing.services.dto import ComputedTotals, IngredientData, RecipeData, RecipeLine


@runtime_checkable
class IngredientReader(Protocol):
    def get_by_id(self, ingredient_id: Any) -> Optional[IngredientData]:
        """Return pricing data for an ingredient, or None if it doesn't exist."""
        ...


@runtime_checkable
class RecipeReader(Protocol):
    def get_by_id(self, recipe_id: Any) -> Optional[RecipeData]:
        """Return a recipe with its lines, or None if it doesn't exist."""
        ...


@runtime_checkable
class ExchangeRateReader(Protocol):
    def get_rates(self, base_currency: str) -> Mapping[str, Decimal]:
        """Return currency code -> units of that currency per 1 base unit."""
        ...


@runtime_checkable
class RecipeWriter(Protocol):
    def save_computed_totals(self, recipe_id: Any, totals: ComputedTotals) -> None:
        """Persist a recipe's derived total cost and profit margin."""
        ...

    def replace_lines(self, recipe_id: Any, lines: Sequence[RecipeLine]) -> None:
        """Replace a recipe's lines. Callers validate the composition first."""
        ...


@runtime_checkable
class RecipeGraphReader(Protocol):
    def get_sub_recipe_ids(self, recipe_id: Any) -> List[Any]:
        """Ids of recipes referenced as sub-recipes by recipe_id."""
        ...

    def get_parent_recipe_ids(self, recipe_id: Any) -> List[Any]:
        """Ids of recipes that reference recipe_id as a sub-recipe."""
        ...
