"""Data Transfer Objects shared by the costing services.

These are the explicit, typed shapes the core works with. Collaborators
(readers/writers) translate whatever their storage holds into these, so the
engine never has to guess what a payload contains.

A RecipeLine is tagged with a LineKind: it references an ingredient or a
sub-recipe, never both and never neither. Code that handles lines branches
on ``line.kind`` and treats any other value as a validation failure.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from recipe_costing.services.exceptions import ValidationError
from recipe_costing.utils.constants import (
    DEFAULT_WASTE_BUFFER_PERCENTAGE,
    ERROR_LINE_REFERENCE,
    MAX_YIELD_PERCENTAGE,
)


class LineKind(str, Enum):
    """What a recipe line references."""

    INGREDIENT = "ingredient"
    SUB_RECIPE = "sub_recipe"


@dataclass(frozen=True)
class IngredientData:
    """Pricing view of an ingredient.

    Attributes:
        id: Ingredient identity
        name: Display name
        unit: Unit the price is expressed in (e.g. price per "kg")
        price_per_unit: Price of one unit, in ``currency``
        currency: Currency code of the price
        category: Optional category (e.g. "Dairy")
        current_stock: Stock on hand in ``unit``
    """

    id: Any
    name: str
    unit: str
    price_per_unit: Decimal
    currency: str
    category: Optional[str] = None
    current_stock: float = 0.0


@dataclass(frozen=True)
class RecipeLine:
    """One line of a recipe.

    Attributes:
        kind: LineKind.INGREDIENT or LineKind.SUB_RECIPE
        ref_id: Id of the referenced ingredient or sub-recipe
        quantity: Amount used (> 0)
        unit: Unit of ``quantity``; may differ from the referenced item's
            pricing unit
        name: Display name of the referenced item, when the reader knows it
        line_id: Storage row id, when persisted
        cached_cost: Last cost computed for this line, informational only
        yield_percentage: Usable share of an ingredient after trimming or
            cooking loss, in percent (80 means 1 kg bought gives 800 g).
            None is 100%. Ingredient lines only.
    """

    kind: LineKind
    ref_id: Any
    quantity: float
    unit: str
    name: Optional[str] = None
    line_id: Optional[Any] = None
    cached_cost: Optional[Decimal] = None
    yield_percentage: Optional[float] = None

    def __post_init__(self):
        errors = []
        if not isinstance(self.kind, LineKind):
            errors.append(f"Unknown line kind: {self.kind!r}")
        if self.ref_id is None:
            errors.append(ERROR_LINE_REFERENCE)
        if self.quantity is None or self.quantity <= 0:
            errors.append(f"Quantity must be greater than zero (got {self.quantity})")
        if not self.unit or not str(self.unit).strip():
            errors.append("Unit is required")
        if self.yield_percentage is not None:
            if self.kind is LineKind.SUB_RECIPE:
                errors.append("Yield percentage applies to ingredient lines only")
            elif not 0 < self.yield_percentage <= MAX_YIELD_PERCENTAGE:
                errors.append(
                    f"Yield percentage must be above 0 and at most 100 (got {self.yield_percentage})"
                )
        if errors:
            raise ValidationError(errors)

    @classmethod
    def ingredient(cls, ingredient_id: Any, quantity: float, unit: str, **kwargs) -> "RecipeLine":
        return cls(LineKind.INGREDIENT, ingredient_id, quantity, unit, **kwargs)

    @classmethod
    def sub_recipe(cls, recipe_id: Any, quantity: float, unit: str, **kwargs) -> "RecipeLine":
        return cls(LineKind.SUB_RECIPE, recipe_id, quantity, unit, **kwargs)

    @classmethod
    def from_ids(
        cls,
        quantity: float,
        unit: str,
        ingredient_id: Any = None,
        sub_recipe_id: Any = None,
        **kwargs,
    ) -> "RecipeLine":
        """
        Build a line from the nullable id pair storage layers use.

        Raises:
            ValidationError: If neither or both ids are set
        """
        if (ingredient_id is None) == (sub_recipe_id is None):
            raise ValidationError([ERROR_LINE_REFERENCE])
        if ingredient_id is not None:
            return cls.ingredient(ingredient_id, quantity, unit, **kwargs)
        return cls.sub_recipe(sub_recipe_id, quantity, unit, **kwargs)

    @property
    def ingredient_id(self) -> Optional[Any]:
        return self.ref_id if self.kind is LineKind.INGREDIENT else None

    @property
    def sub_recipe_id(self) -> Optional[Any]:
        return self.ref_id if self.kind is LineKind.SUB_RECIPE else None

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.kind is LineKind.SUB_RECIPE:
            return f"Sub-recipe {self.ref_id}"
        return f"Ingredient {self.ref_id}"


@dataclass(frozen=True)
class LaborStep:
    """One block of work on a batch.

    Attributes:
        name: What is done ("Prepare raw materials")
        workers: People working the step
        time_minutes: Minutes each worker spends
        hourly_rate: Wage per worker hour, in the recipe's currency
        is_production: True for direct (production) labor; False for
            service work such as plating, which is reported but not costed
            into the goods
    """

    name: str
    workers: float
    time_minutes: float
    hourly_rate: Decimal
    is_production: bool = True

    def __post_init__(self):
        errors = []
        if not self.name or not self.name.strip():
            errors.append("Labor step name is required")
        for label, value in (
            ("Workers", self.workers),
            ("Time", self.time_minutes),
            ("Hourly rate", self.hourly_rate),
        ):
            if value is None or value < 0:
                errors.append(f"{label} must be zero or greater (got {value})")
        if errors:
            raise ValidationError(errors)


@dataclass(frozen=True)
class OverheadSettings:
    """Overhead and labor-tax rates of a recipe, all in percent.

    Attributes:
        variable_overhead_percentage: Variable overhead as a share of direct labor
        fixed_overhead_percentage: Fixed overhead as a share of the total
            cost of goods
        labor_tax_percentages: Payroll taxes, each applied to direct labor
    """

    variable_overhead_percentage: float = 0.0
    fixed_overhead_percentage: float = 0.0
    labor_tax_percentages: Tuple[float, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "labor_tax_percentages", tuple(self.labor_tax_percentages))
        rates = [self.variable_overhead_percentage, self.fixed_overhead_percentage]
        rates.extend(self.labor_tax_percentages)
        if any(rate is None or rate < 0 for rate in rates):
            raise ValidationError(["Overhead and labor tax percentages must be zero or greater"])


@dataclass(frozen=True)
class RecipeData:
    """A recipe as the costing core sees it.

    ``total_cost`` and ``profit_margin`` are the stored derived values; the
    cost engine never reads them back when resolving sub-recipes.

    ``labor_steps`` and ``overhead`` feed the standard-costing figures of
    the recipe's own breakdown; they are not carried into parent recipes.
    """

    id: Any
    name: str
    servings: float
    currency: str
    lines: Tuple[RecipeLine, ...] = ()
    selling_price: Optional[Decimal] = None
    target_cost_percentage: Optional[float] = None
    waste_buffer_percentage: float = DEFAULT_WASTE_BUFFER_PERCENTAGE
    yield_amount: Optional[float] = None
    yield_unit: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    prep_time_minutes: Optional[int] = None
    total_cost: Optional[Decimal] = None
    profit_margin: Optional[float] = None
    labor_steps: Tuple[LaborStep, ...] = ()
    overhead: Optional[OverheadSettings] = None

    def __post_init__(self):
        # Accept any iterable of lines but store an immutable tuple
        object.__setattr__(self, "lines", tuple(self.lines))
        object.__setattr__(self, "labor_steps", tuple(self.labor_steps))

    def sub_recipe_ids(self) -> Tuple[Any, ...]:
        return tuple(line.ref_id for line in self.lines if line.kind is LineKind.SUB_RECIPE)


@dataclass(frozen=True)
class ComputedTotals:
    """Derived values written back for a recipe.

    ``line_costs`` maps a stored line id to that line's cost, or to None
    when the line could not be priced.
    """

    total_cost: Decimal
    profit_margin: Optional[float] = None
    line_costs: Mapping[Any, Optional[Decimal]] = field(default_factory=dict)
