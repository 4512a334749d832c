"""
SQLAlchemy implementation of the costing collaborators.

SqlRecipeStore is constructed explicitly by the caller and handed to the
engine and services:

    store = SqlRecipeStore()
    engine = RecipeCostEngine(store.ingredients, store.recipes, store)
    service = RecipeCostService(engine, writer=store, graph_reader=store)

``store.ingredients`` and ``store.recipes`` are the IngredientReader and
RecipeReader; the store itself is the ExchangeRateReader, RecipeWriter and
RecipeGraphReader. Every call runs in its own transaction.

A few write helpers (add_ingredient, add_recipe, set_exchange_rate) cover
what the CLI and tests need to seed data; full CRUD lives in the host
application.
"""

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recipe_costing.models import ExchangeRate, Ingredient, Recipe, RecipeLaborStep
from recipe_costing.models import RecipeLine as RecipeLineModel
from recipe_costing.services import database
from recipe_costing.services.currency_converter import normalize_currency_code, to_decimal
from recipe_costing.services.dto import (
    ComputedTotals,
    IngredientData,
    LaborStep,
    OverheadSettings,
    RecipeData,
    RecipeLine,
)
from recipe_costing.services.exceptions import (
    DatabaseError,
    IngredientNotFound,
    RecipeNotFound,
    ValidationError,
)
from recipe_costing.services.logging_utils import get_service_logger
from recipe_costing.utils.config import get_config
from recipe_costing.utils.validators import (
    validate_ingredient_data,
    validate_recipe_data,
    validate_recipe_line,
)

logger = get_service_logger(__name__)


# ============================================================================
# Row -> value object conversion
# ============================================================================


def ingredient_to_data(ingredient: Ingredient) -> IngredientData:
    return IngredientData(
        id=ingredient.id,
        name=ingredient.name,
        unit=ingredient.unit,
        price_per_unit=to_decimal(ingredient.price_per_unit or 0),
        currency=ingredient.currency,
        category=ingredient.category,
        current_stock=ingredient.current_stock or 0.0,
    )


def line_to_data(line: RecipeLineModel) -> RecipeLine:
    if line.ingredient_id is not None:
        name = line.ingredient.name if line.ingredient is not None else None
    else:
        name = line.sub_recipe.name if line.sub_recipe is not None else None
    return RecipeLine.from_ids(
        line.quantity,
        line.unit,
        ingredient_id=line.ingredient_id,
        sub_recipe_id=line.sub_recipe_id,
        name=name,
        line_id=line.id,
        cached_cost=line.cost,
        yield_percentage=line.yield_percentage,
    )


def labor_step_to_data(step: RecipeLaborStep) -> LaborStep:
    return LaborStep(
        name=step.name,
        workers=step.workers,
        time_minutes=step.time_minutes,
        hourly_rate=to_decimal(step.hourly_rate),
        is_production=step.is_production,
    )


def overhead_to_data(recipe: Recipe) -> Optional[OverheadSettings]:
    if not recipe.has_overhead_settings:
        return None
    return OverheadSettings(
        variable_overhead_percentage=recipe.variable_overhead_percentage or 0.0,
        fixed_overhead_percentage=recipe.fixed_overhead_percentage or 0.0,
        labor_tax_percentages=recipe.labor_tax_percentages,
    )


def recipe_to_data(recipe: Recipe) -> RecipeData:
    """Convert a Recipe row, with its lines, into a RecipeData."""
    return RecipeData(
        id=recipe.id,
        name=recipe.name,
        servings=recipe.servings,
        currency=recipe.currency,
        lines=[line_to_data(line) for line in recipe.lines],
        selling_price=recipe.selling_price,
        target_cost_percentage=recipe.target_cost_percentage,
        waste_buffer_percentage=recipe.waste_buffer_percentage or 0.0,
        yield_amount=recipe.yield_amount,
        yield_unit=recipe.yield_unit,
        category=recipe.category,
        description=recipe.description,
        prep_time_minutes=recipe.prep_time_minutes,
        total_cost=recipe.total_cost,
        profit_margin=recipe.profit_margin,
        labor_steps=[labor_step_to_data(step) for step in recipe.labor_steps],
        overhead=overhead_to_data(recipe),
    )


def _line_to_dict(line: RecipeLine) -> Dict[str, Any]:
    return {
        "ingredient_id": line.ingredient_id,
        "sub_recipe_id": line.sub_recipe_id,
        "quantity": line.quantity,
        "unit": line.unit,
        "yield_percentage": line.yield_percentage,
    }


def line_rows(lines: Sequence[RecipeLine]) -> List[RecipeLineModel]:
    return [
        RecipeLineModel(
            position=position,
            ingredient_id=line.ingredient_id,
            sub_recipe_id=line.sub_recipe_id,
            quantity=line.quantity,
            unit=line.unit,
            yield_percentage=line.yield_percentage,
        )
        for position, line in enumerate(lines)
    ]


def _labor_step_rows(steps: Sequence[LaborStep]) -> List[RecipeLaborStep]:
    return [
        RecipeLaborStep(
            position=position,
            name=step.name.strip(),
            workers=step.workers,
            time_minutes=step.time_minutes,
            hourly_rate=to_decimal(step.hourly_rate),
            is_production=step.is_production,
        )
        for position, step in enumerate(steps)
    ]


def _apply_overhead(recipe: Recipe, overhead: Optional[OverheadSettings]) -> None:
    if overhead is None:
        return
    recipe.variable_overhead_percentage = overhead.variable_overhead_percentage
    recipe.fixed_overhead_percentage = overhead.fixed_overhead_percentage
    recipe.labor_tax_percentages = overhead.labor_tax_percentages


# ============================================================================
# Store
# ============================================================================


class _IngredientReader:
    def __init__(self, store: "SqlRecipeStore"):
        self._store = store

    def get_by_id(self, ingredient_id: Any) -> Optional[IngredientData]:
        with self._store.session() as session:
            ingredient = session.get(Ingredient, ingredient_id)
            return ingredient_to_data(ingredient) if ingredient is not None else None


class _RecipeReader:
    def __init__(self, store: "SqlRecipeStore"):
        self._store = store

    def get_by_id(self, recipe_id: Any) -> Optional[RecipeData]:
        with self._store.session() as session:
            recipe = session.get(Recipe, recipe_id)
            return recipe_to_data(recipe) if recipe is not None else None


class SqlRecipeStore:
    """
    Database-backed readers and writers.

    Args:
        session_factory: Callable returning a new Session. Defaults to the
            application's global session factory, looked up on each call.
        base_currency: Base used when storing exchange rates without an
            explicit base. Defaults to the configured base currency.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        base_currency: Optional[str] = None,
    ):
        self._session_factory = session_factory
        self.base_currency = normalize_currency_code(
            base_currency if base_currency is not None else get_config().base_currency
        )
        self.ingredients = _IngredientReader(self)
        self.recipes = _RecipeReader(self)

    @contextmanager
    def session(self):
        """
        Transactional session for one store call.

        Raises:
            DatabaseError: Wrapping any SQLAlchemyError
        """
        factory = self._session_factory or database.get_session_factory()
        session = factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise DatabaseError(str(e), e)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------------
    # ExchangeRateReader
    # ------------------------------------------------------------------------

    def get_rates(self, base_currency: str) -> Mapping[str, Decimal]:
        base = normalize_currency_code(base_currency)
        with self.session() as session:
            rows = session.query(ExchangeRate).filter(ExchangeRate.base_currency == base).all()
            return {row.currency: to_decimal(row.rate) for row in rows}

    # ------------------------------------------------------------------------
    # RecipeWriter
    # ------------------------------------------------------------------------

    def save_computed_totals(self, recipe_id: Any, totals: ComputedTotals) -> None:
        with self.session() as session:
            recipe = session.get(Recipe, recipe_id)
            if recipe is None:
                raise RecipeNotFound(recipe_id)
            recipe.total_cost = totals.total_cost
            recipe.profit_margin = totals.profit_margin
            for line in recipe.lines:
                if line.id in totals.line_costs:
                    line.cost = totals.line_costs[line.id]

    def replace_lines(self, recipe_id: Any, lines: Sequence[RecipeLine]) -> None:
        """
        Replace every line of a recipe.

        Raises:
            RecipeNotFound: If the recipe doesn't exist
            ValidationError: If a line fails validation
        """
        errors = []
        for index, line in enumerate(lines, start=1):
            is_valid, line_errors = validate_recipe_line(_line_to_dict(line))
            if not is_valid:
                errors.extend(f"Line {index}: {e}" for e in line_errors)
        if errors:
            raise ValidationError(errors)

        with self.session() as session:
            recipe = session.get(Recipe, recipe_id)
            if recipe is None:
                raise RecipeNotFound(recipe_id)
            recipe.lines = line_rows(lines)
        logger.debug(f"Replaced lines of recipe {recipe_id}: {len(lines)} line(s)")

    # ------------------------------------------------------------------------
    # RecipeGraphReader
    # ------------------------------------------------------------------------

    def get_sub_recipe_ids(self, recipe_id: Any) -> List[Any]:
        with self.session() as session:
            rows = (
                session.query(RecipeLineModel.sub_recipe_id)
                .filter(RecipeLineModel.recipe_id == recipe_id)
                .filter(RecipeLineModel.sub_recipe_id.isnot(None))
                .order_by(RecipeLineModel.position)
                .all()
            )
            return [row[0] for row in rows]

    def get_parent_recipe_ids(self, recipe_id: Any) -> List[Any]:
        with self.session() as session:
            rows = (
                session.query(RecipeLineModel.recipe_id)
                .filter(RecipeLineModel.sub_recipe_id == recipe_id)
                .distinct()
                .order_by(RecipeLineModel.recipe_id)
                .all()
            )
            return [row[0] for row in rows]

    def get_recipe_ids_using_ingredient(self, ingredient_id: Any) -> List[Any]:
        """Recipes with a direct line on the ingredient; callers cascade from these."""
        with self.session() as session:
            rows = (
                session.query(RecipeLineModel.recipe_id)
                .filter(RecipeLineModel.ingredient_id == ingredient_id)
                .distinct()
                .order_by(RecipeLineModel.recipe_id)
                .all()
            )
            return [row[0] for row in rows]

    def recipe_names(self) -> Dict[Any, str]:
        with self.session() as session:
            return {row.id: row.name for row in session.query(Recipe.id, Recipe.name)}

    # ------------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------------

    def add_ingredient(
        self,
        name: str,
        unit: str,
        price_per_unit: Any,
        currency: Optional[str] = None,
        category: Optional[str] = None,
        current_stock: float = 0.0,
    ) -> int:
        """
        Insert an ingredient.

        Returns:
            New ingredient id

        Raises:
            ValidationError: If the fields are invalid
        """
        currency = normalize_currency_code(currency or self.base_currency)
        is_valid, errors = validate_ingredient_data(
            {
                "name": name,
                "unit": unit,
                "price_per_unit": price_per_unit,
                "currency": currency,
                "current_stock": current_stock,
            }
        )
        if not is_valid:
            raise ValidationError(errors)

        with self.session() as session:
            ingredient = Ingredient(
                name=name.strip(),
                unit=unit,
                price_per_unit=to_decimal(price_per_unit),
                currency=currency,
                category=category,
                current_stock=current_stock,
            )
            session.add(ingredient)
            session.flush()
            return ingredient.id

    def update_ingredient_price(self, ingredient_id: Any, price_per_unit: Any) -> None:
        price = to_decimal(price_per_unit)
        if price < 0:
            raise ValidationError(["Price Per Unit: Value must be zero or greater"])
        with self.session() as session:
            ingredient = session.get(Ingredient, ingredient_id)
            if ingredient is None:
                raise IngredientNotFound(ingredient_id)
            ingredient.price_per_unit = price

    def add_recipe(self, name: str, servings: float, lines: Sequence[RecipeLine] = (), **fields) -> int:
        """
        Insert a recipe with its lines.

        Lines are written as given. Use RecipeCostService.commit_composition
        to change the lines of a recipe that other recipes may reference.

        Args:
            name: Recipe name
            servings: Servings per batch
            lines: Initial lines
            **fields: Any other Recipe column (currency, selling_price, ...)
                plus labor_steps (LaborStep list) and overhead (OverheadSettings)

        Returns:
            New recipe id

        Raises:
            ValidationError: If the recipe or a line is invalid
        """
        labor_steps = list(fields.pop("labor_steps", ()))
        overhead = fields.pop("overhead", None)
        fields.setdefault("currency", self.base_currency)
        data = dict(fields, name=name, servings=servings)
        data["lines"] = [_line_to_dict(line) for line in lines]
        is_valid, errors = validate_recipe_data(data)
        if not is_valid:
            raise ValidationError(errors)

        with self.session() as session:
            recipe = Recipe(name=name.strip(), servings=servings, **fields)
            _apply_overhead(recipe, overhead)
            session.add(recipe)
            session.flush()
            recipe.lines = line_rows(lines)
            recipe.labor_steps = _labor_step_rows(labor_steps)
            return recipe.id

    def set_exchange_rate(self, currency: str, rate: Any, base_currency: Optional[str] = None) -> None:
        """
        Insert or update one rate of the table for base_currency.

        Raises:
            ValidationError: If the rate is not positive or currency is the base
        """
        base = normalize_currency_code(base_currency or self.base_currency)
        code = normalize_currency_code(currency)
        value = to_decimal(rate)
        if code == base:
            raise ValidationError([f"{base} is the base currency; its rate is always 1"])
        if value <= 0:
            raise ValidationError([f"Exchange rate for {code} must be greater than zero"])

        with self.session() as session:
            row = (
                session.query(ExchangeRate)
                .filter(ExchangeRate.base_currency == base, ExchangeRate.currency == code)
                .one_or_none()
            )
            if row is None:
                session.add(ExchangeRate(base_currency=base, currency=code, rate=value))
            else:
                row.rate = value

