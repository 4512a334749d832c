"""
Recipe cost engine.

Computes the cost of a recipe from its ingredient lines and, recursively,
from its sub-recipes. For each line:

1. Resolve a price and currency: the ingredient's price per unit, or the
   freshly computed total of the sub-recipe
2. Convert the line quantity into the unit the price is expressed in
3. Multiply, then convert the result into the recipe's currency

An ingredient line with a yield percentage costs quantity * price / (yield / 100):
buying for an 80% yield means paying for the trim.

Subtotal is the sum of the priced lines. The waste buffer is applied on top:
waste_cost = subtotal * waste% / 100, total_cost = subtotal + waste_cost.

Lines that cannot be priced (unit mismatch, missing ingredient or
sub-recipe) are recorded in ``CostBreakdown.errors`` and left out of the
subtotal, so the caller gets a best-effort total plus a list of what is
missing. A missing exchange rate, invalid data or a cycle fails the whole
computation.

Sub-recipe lines are priced by portion:
- "batch": the whole sub-recipe total per unit of quantity
- "serving": total / servings
- any other unit: converted into the sub-recipe's yield unit and priced at
  total / yield_amount

Standard costing sits on top of total_cost (the raw materials) using the
recipe's own labor steps and overhead settings:

- direct labor: sum of workers * minutes / 60 * hourly rate over production
  steps; service steps are reported separately and not costed in
- labor taxes: direct labor * each tax %
- prime cost: raw materials + direct labor
- variable overhead: direct labor * variable %
- total cost of goods: prime cost + variable overhead
- fixed overhead: total cost of goods * fixed %
- fully loaded cost: total cost of goods + fixed overhead + labor taxes

Sub-recipes contribute their raw-material total only.

Money is Decimal throughout. Quantities stay float and are converted with
Decimal(str(q)) when they meet a price.
"""

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from recipe_costing.services.circular_reference_validator import CostingCycleGuard
from recipe_costing.services.currency_converter import (
    convert_currency,
    normalize_currency_code,
    normalize_rate_table,
    to_decimal,
)
from recipe_costing.services.dto import (
    IngredientData,
    LaborStep,
    LineKind,
    RecipeData,
    RecipeLine,
)
from recipe_costing.services.exceptions import (
    ConversionError,
    RecipeNotFound,
    ValidationError,
)
from recipe_costing.services.interfaces import (
    ExchangeRateReader,
    IngredientReader,
    RecipeReader,
)
from recipe_costing.services.logging_utils import get_service_logger, log_operation
from recipe_costing.services.unit_converter import convert_units, normalize_unit
from recipe_costing.utils.config import get_config
from recipe_costing.utils.constants import (
    PORTION_UNIT_ALIASES,
    PORTION_UNIT_BATCH,
    PORTION_UNIT_SERVING,
)

logger = get_service_logger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
MINUTES_PER_HOUR = Decimal("60")
CENTS = Decimal("0.01")


# ============================================================================
# Result Types
# ============================================================================


@dataclass(frozen=True)
class LineError:
    """A recipe line that could not be priced.

    ``item_name`` names the line's ingredient or sub-recipe. Errors carried
    up from a nested sub-recipe are prefixed with the sub-recipe's name
    ("Pie Dough > Butter").
    """

    line_index: int
    item_name: str
    message: str
    kind: Optional[LineKind] = None
    ref_id: Any = None

    def __str__(self) -> str:
        return f"{self.item_name}: {self.message}"


@dataclass(frozen=True)
class LineCost:
    """A priced recipe line.

    Attributes:
        line_index: Position of the line in the recipe
        line: The recipe line
        item_name: Ingredient or sub-recipe name
        priced_quantity: Line quantity in the pricing unit (for sub-recipes,
            the fraction of one batch)
        pricing_unit: Unit the price is expressed in
        unit_price: Price of one pricing unit, in source_currency
        source_currency: Currency of unit_price
        cost: Line cost in the recipe's currency
    """

    line_index: int
    line: RecipeLine
    item_name: str
    priced_quantity: float
    pricing_unit: str
    unit_price: Decimal
    source_currency: str
    cost: Decimal


@dataclass
class CostBreakdown:
    """Result of costing one recipe.

    total_cost is the raw-material cost (lines plus waste). The labor and
    overhead figures are zero unless the recipe carries labor steps or
    overhead settings.
    """

    recipe_id: Any
    recipe_name: str
    currency: str
    subtotal: Decimal
    waste_cost: Decimal
    total_cost: Decimal
    errors: List[LineError] = field(default_factory=list)
    lines: List[LineCost] = field(default_factory=list)
    direct_labor: Decimal = ZERO
    service_labor: Decimal = ZERO
    labor_taxes: Decimal = ZERO
    variable_overhead: Decimal = ZERO
    fixed_overhead: Decimal = ZERO

    @property
    def is_complete(self) -> bool:
        return not self.errors

    @property
    def raw_materials(self) -> Decimal:
        return self.total_cost

    @property
    def prime_cost(self) -> Decimal:
        return self.total_cost + self.direct_labor

    @property
    def total_cost_of_goods(self) -> Decimal:
        return self.prime_cost + self.variable_overhead

    @property
    def fully_loaded_cost(self) -> Decimal:
        return self.total_cost_of_goods + self.fixed_overhead + self.labor_taxes

    @property
    def has_labor_or_overhead(self) -> bool:
        return any(
            value != ZERO
            for value in (
                self.direct_labor,
                self.service_labor,
                self.labor_taxes,
                self.variable_overhead,
                self.fixed_overhead,
            )
        )

    def warning_summary(self) -> Optional[str]:
        """
        Message for callers to display when some lines were left out.

        Returns:
            None when every line was priced, otherwise e.g.
            "Could not price 2 ingredient(s): Flour: ...; Milk: ..."
        """
        if not self.errors:
            return None
        details = "; ".join(str(e) for e in self.errors)
        return f"Could not price {len(self.errors)} ingredient(s): {details}"

    def suggested_price(self, target_cost_percentage: Optional[float]) -> Decimal:
        return calculate_suggested_price(self.total_cost, target_cost_percentage)

    def profit_margin(self, selling_price: Optional[Any]) -> Optional[float]:
        return calculate_profit_margin(self.total_cost, selling_price)

    def food_cost_percentage(self, selling_price: Optional[Any]) -> float:
        return calculate_food_cost_percentage(self.total_cost, selling_price)


# ============================================================================
# Derived Values
# ============================================================================


def calculate_suggested_price(total_cost: Any, target_cost_percentage: Optional[float]) -> Decimal:
    """
    Selling price at which total_cost is target_cost_percentage of the price.

    Args:
        total_cost: Recipe cost
        target_cost_percentage: Desired food cost, in percent (e.g. 25)

    Returns:
        total / (target / 100), rounded to cents. Decimal("0.00") when the
        target is missing, zero or negative.

    Example:
        >>> calculate_suggested_price(Decimal("10.50"), 25)
        Decimal('42.00')
    """
    if target_cost_percentage is None:
        return ZERO.quantize(CENTS)
    target = to_decimal(target_cost_percentage)
    if target <= 0:
        return ZERO.quantize(CENTS)
    price = to_decimal(total_cost) / (target / HUNDRED)
    return price.quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_profit_margin(total_cost: Any, selling_price: Optional[Any]) -> Optional[float]:
    """
    Profit margin in percent: (selling - cost) / selling * 100.

    Returns:
        None when there is no selling price or it is not positive
    """
    if selling_price is None:
        return None
    price = to_decimal(selling_price)
    if price <= 0:
        return None
    margin = (price - to_decimal(total_cost)) / price * HUNDRED
    return float(margin)


def calculate_food_cost_percentage(total_cost: Any, selling_price: Optional[Any]) -> float:
    """Cost as a percentage of the selling price; 0.0 for a missing or non-positive price."""
    if selling_price is None:
        return 0.0
    price = to_decimal(selling_price)
    if price <= 0:
        return 0.0
    return float(to_decimal(total_cost) / price * HUNDRED)


def calculate_weighted_average_price(
    current_stock: float,
    current_price: Any,
    added_quantity: float,
    added_price: Any,
) -> Decimal:
    """
    New per-unit price after receiving stock at a different price.

    Used by purchase flows to update an ingredient's price_per_unit.

    Example:
        >>> calculate_weighted_average_price(10, Decimal("5"), 20, Decimal("8"))
        Decimal('7')

    Returns:
        Weighted average price, or Decimal("0") when the combined stock is
        zero or negative
    """
    stock = to_decimal(current_stock)
    added = to_decimal(added_quantity)
    combined = stock + added
    if combined <= 0:
        return ZERO
    value = stock * to_decimal(current_price) + added * to_decimal(added_price)
    return value / combined


def labor_step_cost(step: LaborStep) -> Decimal:
    """
    Cost of one labor step: workers * minutes / 60 * hourly rate.

    Example:
        >>> labor_step_cost(LaborStep("Assemble", 1, 24, Decimal("150")))
        Decimal('60.0')
    """
    hours = to_decimal(step.workers) * to_decimal(step.time_minutes) / MINUTES_PER_HOUR
    return hours * to_decimal(step.hourly_rate)


def apply_yield(cost: Decimal, yield_percentage: Optional[float]) -> Decimal:
    """Scale a line cost up for a usable yield below 100%."""
    if yield_percentage is None:
        return cost
    return cost / (to_decimal(yield_percentage) / HUNDRED)


def _labor_and_overhead(recipe: RecipeData) -> Dict[str, Decimal]:
    direct = sum(
        (labor_step_cost(s) for s in recipe.labor_steps if s.is_production), ZERO
    )
    service = sum(
        (labor_step_cost(s) for s in recipe.labor_steps if not s.is_production), ZERO
    )
    overhead = recipe.overhead
    if overhead is None:
        return {"direct_labor": direct, "service_labor": service}

    tax_percentage = sum((to_decimal(t) for t in overhead.labor_tax_percentages), ZERO)
    return {
        "direct_labor": direct,
        "service_labor": service,
        "labor_taxes": direct * tax_percentage / HUNDRED,
        "variable_overhead": direct * to_decimal(overhead.variable_overhead_percentage) / HUNDRED,
    }


# ============================================================================
# Engine
# ============================================================================


def canonical_portion_unit(unit: str) -> str:
    """Map "batches"/"servings"/"portion" onto "batch"/"serving"; other units pass through."""
    norm = normalize_unit(unit)
    return PORTION_UNIT_ALIASES.get(norm, norm)


def portion_of_batch(line: RecipeLine, sub_recipe: RecipeData) -> float:
    """
    Fraction of one sub-recipe batch a line uses.

    Raises:
        ConversionError: If the line's unit cannot be related to the
            sub-recipe's batch (no servings, no yield, or an incompatible
            yield unit)
    """
    unit = canonical_portion_unit(line.unit)

    if unit == PORTION_UNIT_BATCH:
        return line.quantity

    if unit == PORTION_UNIT_SERVING:
        if not sub_recipe.servings or sub_recipe.servings <= 0:
            raise ConversionError(
                line.unit, PORTION_UNIT_BATCH, f'"{sub_recipe.name}" has no servings'
            )
        return line.quantity / sub_recipe.servings

    if not sub_recipe.yield_amount or not sub_recipe.yield_unit:
        raise ConversionError(
            line.unit, PORTION_UNIT_BATCH, f'"{sub_recipe.name}" has no yield to price against'
        )
    in_yield_unit = convert_units(line.quantity, line.unit, sub_recipe.yield_unit)
    return in_yield_unit / sub_recipe.yield_amount


class _Computation:
    """State shared across one top-level computation."""

    def __init__(self, rate_reader: ExchangeRateReader, base_currency: str, max_depth: int):
        self._rate_reader = rate_reader
        self._rates: Optional[Dict[str, Decimal]] = None
        self.base_currency = base_currency
        self.guard = CostingCycleGuard(max_depth)
        self.memo: Dict[Any, Tuple[RecipeData, CostBreakdown]] = {}

    @property
    def rates(self) -> Mapping[str, Decimal]:
        # Read at most once per computation, and only when a conversion needs it
        if self._rates is None:
            raw = self._rate_reader.get_rates(self.base_currency)
            self._rates = normalize_rate_table(self.base_currency, raw)
        return self._rates

    def to_currency(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        if normalize_currency_code(from_currency) == normalize_currency_code(to_currency):
            return amount
        return convert_currency(amount, from_currency, to_currency, self.rates, self.base_currency)


class RecipeCostEngine:
    """
    Computes recipe costs through injected readers.

    Example:
        >>> engine = RecipeCostEngine(store, store, store, base_currency="USD")
        >>> breakdown = engine.compute_recipe_cost(recipe_id=12)
        >>> breakdown.total_cost, breakdown.warning_summary()
        (Decimal('10.50'), None)
    """

    def __init__(
        self,
        ingredient_reader: IngredientReader,
        recipe_reader: RecipeReader,
        rate_reader: ExchangeRateReader,
        base_currency: Optional[str] = None,
        max_depth: Optional[int] = None,
    ):
        config = get_config() if base_currency is None or max_depth is None else None
        self.ingredient_reader = ingredient_reader
        self.recipe_reader = recipe_reader
        self.rate_reader = rate_reader
        self.base_currency = normalize_currency_code(
            base_currency if base_currency is not None else config.base_currency
        )
        self.max_depth = max_depth if max_depth is not None else config.max_recipe_depth

    def compute_recipe_cost(self, recipe_id: Any) -> CostBreakdown:
        """
        Look a recipe up and compute its cost.

        Raises:
            RecipeNotFound: If the recipe doesn't exist
            MissingExchangeRateError: If a needed currency has no rate
            CircularReferenceError: If the stored composition contains a cycle
        """
        recipe = self.recipe_reader.get_by_id(recipe_id)
        if recipe is None:
            raise RecipeNotFound(recipe_id)
        return self.compute_total_cost(recipe)

    def compute_total_cost(self, recipe: RecipeData) -> CostBreakdown:
        """
        Compute the cost of a recipe.

        Args:
            recipe: Recipe with its lines. Stored derived totals on it and on
                its sub-recipes are ignored.

        Returns:
            CostBreakdown in the recipe's currency

        Raises:
            MissingExchangeRateError: If a needed currency has no rate
            ValidationError: If the rate table or a line is invalid
            CircularReferenceError: If the composition reaches a recipe twice
                on one path, or nests deeper than max_depth
        """
        computation = _Computation(self.rate_reader, self.base_currency, self.max_depth)
        breakdown = self._compute(recipe, computation)

        if breakdown.errors:
            log_operation(
                logger,
                operation="compute_total_cost",
                outcome="partial",
                level=logging.WARNING,
                recipe_id=recipe.id,
                error_count=len(breakdown.errors),
                total_cost=str(breakdown.total_cost),
            )
        return breakdown

    def _compute(self, recipe: RecipeData, computation: _Computation) -> CostBreakdown:
        errors: List[LineError] = []
        priced: List[LineCost] = []

        with computation.guard.visiting(recipe.id, recipe.name):
            for index, line in enumerate(recipe.lines):
                if line.kind is LineKind.INGREDIENT:
                    self._price_ingredient_line(recipe, index, line, computation, priced, errors)
                elif line.kind is LineKind.SUB_RECIPE:
                    self._price_sub_recipe_line(recipe, index, line, computation, priced, errors)
                else:
                    raise ValidationError([f"Unknown line kind: {line.kind!r}"])

        subtotal = sum((p.cost for p in priced), ZERO)
        waste_percentage = to_decimal(recipe.waste_buffer_percentage or 0)
        waste_cost = subtotal * waste_percentage / HUNDRED

        log_operation(
            logger,
            operation="compute_recipe",
            outcome="success" if not errors else "partial",
            level=logging.DEBUG,
            recipe_id=recipe.id,
            depth=computation.guard.depth + 1,
        )

        breakdown = CostBreakdown(
            recipe_id=recipe.id,
            recipe_name=recipe.name,
            currency=recipe.currency,
            subtotal=subtotal,
            waste_cost=waste_cost,
            total_cost=subtotal + waste_cost,
            errors=errors,
            lines=priced,
            **_labor_and_overhead(recipe),
        )
        if recipe.overhead is not None:
            fixed_percentage = to_decimal(recipe.overhead.fixed_overhead_percentage)
            breakdown.fixed_overhead = breakdown.total_cost_of_goods * fixed_percentage / HUNDRED
        return breakdown

    def _price_ingredient_line(
        self,
        recipe: RecipeData,
        index: int,
        line: RecipeLine,
        computation: _Computation,
        priced: List[LineCost],
        errors: List[LineError],
    ) -> None:
        ingredient: Optional[IngredientData] = self.ingredient_reader.get_by_id(line.ref_id)
        if ingredient is None:
            errors.append(
                LineError(index, line.display_name, "ingredient not found", line.kind, line.ref_id)
            )
            return

        try:
            quantity = convert_units(line.quantity, line.unit, ingredient.unit)
        except ConversionError as e:
            errors.append(LineError(index, ingredient.name, str(e), line.kind, line.ref_id))
            return

        unit_price = to_decimal(ingredient.price_per_unit)
        cost = apply_yield(to_decimal(quantity) * unit_price, line.yield_percentage)
        priced.append(
            LineCost(
                line_index=index,
                line=line,
                item_name=ingredient.name,
                priced_quantity=quantity,
                pricing_unit=ingredient.unit,
                unit_price=unit_price,
                source_currency=ingredient.currency,
                cost=computation.to_currency(cost, ingredient.currency, recipe.currency),
            )
        )

    def _price_sub_recipe_line(
        self,
        recipe: RecipeData,
        index: int,
        line: RecipeLine,
        computation: _Computation,
        priced: List[LineCost],
        errors: List[LineError],
    ) -> None:
        cached = computation.memo.get(line.ref_id)
        if cached is None:
            sub_recipe = self.recipe_reader.get_by_id(line.ref_id)
            if sub_recipe is None:
                errors.append(
                    LineError(index, line.display_name, "sub-recipe not found", line.kind, line.ref_id)
                )
                return
            sub_breakdown = self._compute(sub_recipe, computation)
            computation.memo[line.ref_id] = (sub_recipe, sub_breakdown)
        else:
            sub_recipe, sub_breakdown = cached

        for nested in sub_breakdown.errors:
            errors.append(
                LineError(
                    index,
                    f"{sub_recipe.name} > {nested.item_name}",
                    nested.message,
                    nested.kind,
                    nested.ref_id,
                )
            )

        try:
            fraction = portion_of_batch(line, sub_recipe)
        except ConversionError as e:
            errors.append(LineError(index, sub_recipe.name, str(e), line.kind, line.ref_id))
            return

        cost = to_decimal(fraction) * sub_breakdown.total_cost
        priced.append(
            LineCost(
                line_index=index,
                line=line,
                item_name=sub_recipe.name,
                priced_quantity=fraction,
                pricing_unit=PORTION_UNIT_BATCH,
                unit_price=sub_breakdown.total_cost,
                source_currency=sub_recipe.currency,
                cost=computation.to_currency(cost, sub_recipe.currency, recipe.currency),
            )
        )
