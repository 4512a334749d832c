"""
Prep Sheet Service.

Aggregates scaled recipe selections into one prep/shopping list, and stores
generated sheets as immutable documents.

Aggregation rules:
- scale factor = requested servings / recipe servings, applied to every line
  without intermediate rounding
- lines are merged per ingredient; the first contribution fixes the item's
  unit and later ones are converted into it
- a contribution that cannot be converted stays visible as an unmerged
  breakdown entry in its own unit and is not added to total_quantity
- sub-recipe lines are expanded into their own ingredient lines, scaled by
  the portion of the sub-recipe batch they use; breakdown labels show the
  path ("Pancakes > Batter")
- items are sorted by ingredient name, case-insensitively and in locale
  order, ties broken by id

Session Management Pattern:
- All persistence functions accept session=None parameter
- If session provided, use it directly
- If session is None, create a new session via session_scope()
"""

import json
import locale
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recipe_costing.models import PrepSheetRecord
from recipe_costing.services.circular_reference_validator import CostingCycleGuard
from recipe_costing.services.cost_engine import portion_of_batch
from recipe_costing.services.database import session_scope
from recipe_costing.services.dto import LineKind, RecipeData
from recipe_costing.services.exceptions import (
    ConversionError,
    DatabaseError,
    PrepSheetNotFound,
    RecipeNotFound,
    ValidationError,
)
from recipe_costing.services.interfaces import IngredientReader, RecipeReader
from recipe_costing.services.logging_utils import get_service_logger, log_operation
from recipe_costing.services.unit_converter import try_convert_units
from recipe_costing.utils.config import get_config
from recipe_costing.utils.constants import DATE_FORMAT

logger = get_service_logger(__name__)

DEFAULT_PREP_SHEET_NAME = "Prep Sheet"


# ============================================================================
# Data Types
# ============================================================================


@dataclass(frozen=True)
class PrepSheetSelection:
    """A recipe to prepare and how many servings of it."""

    recipe_id: Any
    requested_servings: float


@dataclass
class BreakdownEntry:
    """One recipe's contribution to an item.

    ``merged`` is False when the contribution could not be converted into
    the item's unit; quantity and unit are then the contribution's own.
    """

    recipe_name: str
    quantity: float
    unit: str
    merged: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipe_name": self.recipe_name,
            "quantity": self.quantity,
            "unit": self.unit,
            "merged": self.merged,
        }


@dataclass
class PrepSheetItem:
    ingredient_id: Any
    ingredient_name: str
    unit: str
    total_quantity: float
    breakdown: List[BreakdownEntry] = field(default_factory=list)
    kind: LineKind = LineKind.INGREDIENT

    @property
    def has_unmerged(self) -> bool:
        return any(not entry.merged for entry in self.breakdown)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ingredient_id": self.ingredient_id,
            "ingredient_name": self.ingredient_name,
            "unit": self.unit,
            "total_quantity": self.total_quantity,
            "kind": self.kind.value,
            "breakdown": [entry.to_dict() for entry in self.breakdown],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrepSheetItem":
        return cls(
            ingredient_id=data["ingredient_id"],
            ingredient_name=data["ingredient_name"],
            unit=data["unit"],
            total_quantity=data["total_quantity"],
            kind=LineKind(data.get("kind", LineKind.INGREDIENT.value)),
            breakdown=[BreakdownEntry(**entry) for entry in data.get("breakdown", [])],
        )


@dataclass
class PrepSheetRecipe:
    """Summary of one selection on the sheet."""

    recipe_id: Any
    recipe_name: str
    base_servings: float
    requested_servings: float
    scale_factor: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipe_id": self.recipe_id,
            "recipe_name": self.recipe_name,
            "base_servings": self.base_servings,
            "requested_servings": self.requested_servings,
            "scale_factor": self.scale_factor,
        }


@dataclass
class PrepSheet:
    name: str
    items: List[PrepSheetItem]
    recipes: List[PrepSheetRecipe]
    sheet_date: Optional[date] = None
    shift: Optional[str] = None
    prep_cook_name: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None

    def get_item(self, ingredient_id: Any) -> Optional[PrepSheetItem]:
        for item in self.items:
            if item.kind is LineKind.INGREDIENT and item.ingredient_id == ingredient_id:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "sheet_date": self.sheet_date.strftime(DATE_FORMAT) if self.sheet_date else None,
            "shift": self.shift,
            "prep_cook_name": self.prep_cook_name,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "recipes": [r.to_dict() for r in self.recipes],
            "items": [i.to_dict() for i in self.items],
        }


# ============================================================================
# Aggregation
# ============================================================================


def _sort_key(item: PrepSheetItem) -> Tuple[str, str, Any]:
    return (locale.strxfrm(item.ingredient_name.casefold()), item.kind.value, item.ingredient_id)


class _Aggregator:
    def __init__(
        self,
        recipe_reader: RecipeReader,
        ingredient_reader: Optional[IngredientReader],
        expand_sub_recipes: bool,
        max_depth: int,
    ):
        self.recipe_reader = recipe_reader
        self.ingredient_reader = ingredient_reader
        self.expand_sub_recipes = expand_sub_recipes
        self.max_depth = max_depth
        self.items: Dict[Tuple[LineKind, Any], PrepSheetItem] = {}
        self._names: Dict[Any, str] = {}

    def _ingredient_name(self, line) -> str:
        if line.name:
            return line.name
        if line.ref_id not in self._names:
            ingredient = (
                self.ingredient_reader.get_by_id(line.ref_id)
                if self.ingredient_reader is not None
                else None
            )
            self._names[line.ref_id] = ingredient.name if ingredient else line.display_name
        return self._names[line.ref_id]

    def add(self, kind: LineKind, ref_id: Any, name: str, quantity: float, unit: str, label: str):
        key = (kind, ref_id)
        item = self.items.get(key)
        if item is None:
            self.items[key] = PrepSheetItem(
                ingredient_id=ref_id,
                ingredient_name=name,
                unit=unit,
                total_quantity=quantity,
                breakdown=[BreakdownEntry(label, quantity, unit)],
                kind=kind,
            )
            return

        converted = try_convert_units(quantity, unit, item.unit)
        if converted is None:
            item.breakdown.append(BreakdownEntry(label, quantity, unit, merged=False))
            return
        item.total_quantity += converted
        item.breakdown.append(BreakdownEntry(label, converted, item.unit))

    def collect(self, recipe: RecipeData, factor: float, label: str, guard: CostingCycleGuard):
        with guard.visiting(recipe.id, recipe.name):
            for line in recipe.lines:
                if line.kind is LineKind.INGREDIENT:
                    self.add(
                        line.kind,
                        line.ref_id,
                        self._ingredient_name(line),
                        line.quantity * factor,
                        line.unit,
                        label,
                    )
                elif line.kind is LineKind.SUB_RECIPE:
                    self._collect_sub_recipe(line, factor, label, guard)
                else:
                    raise ValidationError([f"Unknown line kind: {line.kind!r}"])

    def _collect_sub_recipe(self, line, factor: float, label: str, guard: CostingCycleGuard):
        sub_recipe = self.recipe_reader.get_by_id(line.ref_id)
        if sub_recipe is None:
            raise RecipeNotFound(line.ref_id)

        if self.expand_sub_recipes:
            try:
                fraction = portion_of_batch(line, sub_recipe)
            except ConversionError as e:
                logger.warning(f"Listing sub-recipe '{sub_recipe.name}' unexpanded: {e}")
            else:
                self.collect(sub_recipe, factor * fraction, f"{label} > {sub_recipe.name}", guard)
                return

        self.add(
            LineKind.SUB_RECIPE,
            sub_recipe.id,
            sub_recipe.name,
            line.quantity * factor,
            line.unit,
            label,
        )


def generate_prep_sheet(
    selections: Iterable[PrepSheetSelection],
    recipe_reader: RecipeReader,
    name: str = DEFAULT_PREP_SHEET_NAME,
    expand_sub_recipes: bool = True,
    ingredient_reader: Optional[IngredientReader] = None,
    sheet_date: Optional[date] = None,
    shift: Optional[str] = None,
    prep_cook_name: Optional[str] = None,
    notes: Optional[str] = None,
    max_depth: Optional[int] = None,
) -> PrepSheet:
    """
    Aggregate recipe selections into a prep sheet.

    Args:
        selections: Recipes and requested servings. The same recipe may
            appear more than once.
        recipe_reader: Source of recipes (with lines)
        name: Sheet title
        expand_sub_recipes: Replace sub-recipe lines by their ingredients.
            When False, sub-recipes are listed as items of their own.
        ingredient_reader: Used to name ingredients whose lines carry no name
        sheet_date, shift, prep_cook_name, notes: Sheet metadata
        max_depth: Sub-recipe nesting bound; defaults to configuration

    Returns:
        PrepSheet with items sorted by ingredient name

    Raises:
        RecipeNotFound: If a selected recipe or a sub-recipe doesn't exist
        ValidationError: If a request is negative or a recipe has no
            positive servings
        CircularReferenceError: If a selected recipe's composition has a cycle

    Example:
        >>> sheet = generate_prep_sheet(
        ...     [PrepSheetSelection(pancakes_id, 12), PrepSheetSelection(waffles_id, 4)],
        ...     store.recipes,
        ... )
        >>> flour = sheet.get_item(flour_id)
        >>> flour.total_quantity, flour.unit
        (2300.0, 'g')
    """
    if max_depth is None:
        max_depth = get_config().max_recipe_depth

    aggregator = _Aggregator(recipe_reader, ingredient_reader, expand_sub_recipes, max_depth)
    recipes: List[PrepSheetRecipe] = []

    for selection in selections:
        if selection.requested_servings is None or selection.requested_servings < 0:
            raise ValidationError(
                [f"Requested servings must be zero or greater (got {selection.requested_servings})"]
            )

        recipe = recipe_reader.get_by_id(selection.recipe_id)
        if recipe is None:
            raise RecipeNotFound(selection.recipe_id)
        if not recipe.servings or recipe.servings <= 0:
            raise ValidationError([f'Recipe "{recipe.name}" has no servings to scale from'])

        factor = selection.requested_servings / recipe.servings
        recipes.append(
            PrepSheetRecipe(
                recipe_id=recipe.id,
                recipe_name=recipe.name,
                base_servings=recipe.servings,
                requested_servings=selection.requested_servings,
                scale_factor=factor,
            )
        )
        aggregator.collect(recipe, factor, recipe.name, CostingCycleGuard(max_depth))

    items = sorted(aggregator.items.values(), key=_sort_key)

    log_operation(
        logger,
        operation="generate_prep_sheet",
        outcome="success",
        level=logging.DEBUG,
        recipe_count=len(recipes),
        item_count=len(items),
    )

    return PrepSheet(
        name=name,
        items=items,
        recipes=recipes,
        sheet_date=sheet_date,
        shift=shift,
        prep_cook_name=prep_cook_name,
        notes=notes,
    )


# ============================================================================
# Persistence
# ============================================================================


def _record_to_sheet(record: PrepSheetRecord) -> PrepSheet:
    return PrepSheet(
        id=record.id,
        name=record.name,
        sheet_date=record.sheet_date,
        shift=record.shift,
        prep_cook_name=record.prep_cook_name,
        notes=record.notes,
        created_at=record.created_at,
        recipes=[PrepSheetRecipe(**r) for r in record.get_recipes_data()],
        items=[PrepSheetItem.from_dict(i) for i in record.get_items_data()],
    )


def save_prep_sheet(sheet: PrepSheet, session: Session = None) -> int:
    """
    Persist a generated prep sheet.

    Args:
        sheet: Sheet from generate_prep_sheet
        session: Optional SQLAlchemy session for transaction sharing

    Returns:
        New prep sheet id

    Raises:
        ValidationError: If the sheet has no name
        DatabaseError: If the database write fails
    """
    if not sheet.name or not sheet.name.strip():
        raise ValidationError(["Prep sheet name is required"])

    if session is not None:
        return _save_prep_sheet_impl(sheet, session)

    try:
        with session_scope() as session:
            return _save_prep_sheet_impl(sheet, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to save prep sheet", e)


def _save_prep_sheet_impl(sheet: PrepSheet, session: Session) -> int:
    record = PrepSheetRecord(
        name=sheet.name.strip(),
        sheet_date=sheet.sheet_date,
        shift=sheet.shift,
        prep_cook_name=sheet.prep_cook_name,
        notes=sheet.notes,
        recipes_data=json.dumps([r.to_dict() for r in sheet.recipes]),
        items_data=json.dumps([i.to_dict() for i in sheet.items]),
    )
    session.add(record)
    session.flush()

    log_operation(
        logger,
        operation="save_prep_sheet",
        outcome="success",
        prep_sheet_id=record.id,
        item_count=len(sheet.items),
    )
    return record.id


def get_prep_sheet(prep_sheet_id: int, session: Session = None) -> PrepSheet:
    """
    Load a saved prep sheet.

    Raises:
        PrepSheetNotFound: If no sheet has this id
        DatabaseError: If the database read fails
    """
    if session is not None:
        return _get_prep_sheet_impl(prep_sheet_id, session)

    try:
        with session_scope() as session:
            return _get_prep_sheet_impl(prep_sheet_id, session)
    except PrepSheetNotFound:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to load prep sheet {prep_sheet_id}", e)


def _get_prep_sheet_impl(prep_sheet_id: int, session: Session) -> PrepSheet:
    record = session.get(PrepSheetRecord, prep_sheet_id)
    if record is None:
        raise PrepSheetNotFound(prep_sheet_id)
    return _record_to_sheet(record)


def list_prep_sheets(session: Session = None) -> List[PrepSheet]:
    """
    All saved prep sheets, newest sheet date first.

    Sheets without a date come last; ties are ordered newest created first.
    """
    if session is not None:
        return _list_prep_sheets_impl(session)

    try:
        with session_scope() as session:
            return _list_prep_sheets_impl(session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to list prep sheets", e)


def _list_prep_sheets_impl(session: Session) -> List[PrepSheet]:
    records = (
        session.query(PrepSheetRecord)
        .order_by(
            PrepSheetRecord.sheet_date.is_(None),
            PrepSheetRecord.sheet_date.desc(),
            PrepSheetRecord.created_at.desc(),
            PrepSheetRecord.id.desc(),
        )
        .all()
    )
    return [_record_to_sheet(record) for record in records]


def delete_prep_sheet(prep_sheet_id: int, session: Session = None) -> None:
    """
    Delete a saved prep sheet.

    Raises:
        PrepSheetNotFound: If no sheet has this id
    """
    if session is not None:
        return _delete_prep_sheet_impl(prep_sheet_id, session)

    try:
        with session_scope() as session:
            return _delete_prep_sheet_impl(prep_sheet_id, session)
    except PrepSheetNotFound:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to delete prep sheet {prep_sheet_id}", e)


def _delete_prep_sheet_impl(prep_sheet_id: int, session: Session) -> None:
    record = session.get(PrepSheetRecord, prep_sheet_id)
    if record is None:
        raise PrepSheetNotFound(prep_sheet_id)
    session.delete(record)
    log_operation(logger, operation="delete_prep_sheet", outcome="success", prep_sheet_id=prep_sheet_id)
