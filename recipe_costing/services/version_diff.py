"""
Recipe snapshots and the differ that compares two of them.

A RecipeSnapshot freezes a recipe's scalar fields and lines at one moment.
diff_snapshots reports, field by field and line by line, what changed from
snapshot A to snapshot B. It only describes changes; whether a change is
good or bad for the business is left to the caller.

Field change types:
- unchanged: old == new (both None counts as equal)
- modified: anything else, including a value that was set or cleared

Only lines are ever added or removed.

Numeric fields also carry percent_change = (new - old) / old * 100 when both
sides are set and old is not zero, otherwise None.

Lines are matched by what they reference (kind + id). When a recipe uses the
same ingredient twice, occurrences are paired in order.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from recipe_costing.services.currency_converter import to_decimal
from recipe_costing.services.dto import LineKind, RecipeData
from recipe_costing.services.unit_converter import normalize_unit, try_convert_units


class ChangeType(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"


# Field name -> display label
NUMERIC_FIELDS: Dict[str, str] = OrderedDict(
    [
        ("servings", "Servings"),
        ("yield_amount", "Yield Amount"),
        ("prep_time_minutes", "Prep Time (min)"),
        ("selling_price", "Selling Price"),
        ("target_cost_percentage", "Target Cost %"),
        ("waste_buffer_percentage", "Waste Buffer %"),
        ("total_cost", "Total Cost"),
        ("profit_margin", "Profit Margin %"),
    ]
)
TEXT_FIELDS: Dict[str, str] = OrderedDict(
    [
        ("name", "Name"),
        ("description", "Description"),
        ("category", "Category"),
        ("yield_unit", "Yield Unit"),
        ("currency", "Currency"),
    ]
)

# Fields stored as Decimal strings in snapshot dictionaries
_DECIMAL_FIELDS = ("selling_price", "total_cost")


# ============================================================================
# Snapshots
# ============================================================================


@dataclass(frozen=True)
class SnapshotLine:
    """A recipe line as it was when the snapshot was taken."""

    kind: LineKind
    ref_id: Any
    quantity: float
    unit: str
    name: Optional[str] = None
    line_id: Optional[Any] = None
    cost: Optional[Decimal] = None
    yield_percentage: Optional[float] = None

    @property
    def reference(self) -> Tuple[LineKind, Any]:
        return (self.kind, self.ref_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "ref_id": self.ref_id,
            "quantity": self.quantity,
            "unit": self.unit,
            "name": self.name,
            "line_id": self.line_id,
            "cost": str(self.cost) if self.cost is not None else None,
            "yield_percentage": self.yield_percentage,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SnapshotLine":
        cost = data.get("cost")
        return cls(
            kind=LineKind(data["kind"]),
            ref_id=data["ref_id"],
            quantity=data["quantity"],
            unit=data["unit"],
            name=data.get("name"),
            line_id=data.get("line_id"),
            cost=Decimal(cost) if cost is not None else None,
            yield_percentage=data.get("yield_percentage"),
        )


@dataclass(frozen=True)
class RecipeSnapshot:
    """Frozen copy of a recipe's fields and lines."""

    name: str
    servings: float
    currency: str
    description: Optional[str] = None
    category: Optional[str] = None
    yield_amount: Optional[float] = None
    yield_unit: Optional[str] = None
    prep_time_minutes: Optional[int] = None
    selling_price: Optional[Decimal] = None
    target_cost_percentage: Optional[float] = None
    waste_buffer_percentage: Optional[float] = None
    total_cost: Optional[Decimal] = None
    profit_margin: Optional[float] = None
    lines: Tuple[SnapshotLine, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "lines", tuple(self.lines))

    @classmethod
    def from_recipe(cls, recipe: RecipeData) -> "RecipeSnapshot":
        """Freeze a recipe. Line costs come from each line's cached_cost."""
        return cls(
            name=recipe.name,
            servings=recipe.servings,
            currency=recipe.currency,
            description=recipe.description,
            category=recipe.category,
            yield_amount=recipe.yield_amount,
            yield_unit=recipe.yield_unit,
            prep_time_minutes=recipe.prep_time_minutes,
            selling_price=recipe.selling_price,
            target_cost_percentage=recipe.target_cost_percentage,
            waste_buffer_percentage=recipe.waste_buffer_percentage,
            total_cost=recipe.total_cost,
            profit_margin=recipe.profit_margin,
            lines=tuple(
                SnapshotLine(
                    kind=line.kind,
                    ref_id=line.ref_id,
                    quantity=line.quantity,
                    unit=line.unit,
                    name=line.name,
                    line_id=line.line_id,
                    cost=line.cached_cost,
                    yield_percentage=line.yield_percentage,
                )
                for line in recipe.lines
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dictionary; Decimals become strings."""
        data: Dict[str, Any] = {}
        for name in list(NUMERIC_FIELDS) + list(TEXT_FIELDS):
            value = getattr(self, name)
            if isinstance(value, Decimal):
                value = str(value)
            data[name] = value
        data["lines"] = [line.to_dict() for line in self.lines]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecipeSnapshot":
        values = {name: data.get(name) for name in list(NUMERIC_FIELDS) + list(TEXT_FIELDS)}
        for name in _DECIMAL_FIELDS:
            if values[name] is not None:
                values[name] = Decimal(str(values[name]))
        values["lines"] = tuple(SnapshotLine.from_dict(line) for line in data.get("lines", []))
        return cls(**values)


# ============================================================================
# Diff Results
# ============================================================================


@dataclass(frozen=True)
class FieldDiff:
    field_name: str
    label: str
    old_value: Any
    new_value: Any
    change_type: ChangeType
    percent_change: Optional[float] = None


@dataclass(frozen=True)
class IngredientDiff:
    """Change to one referenced ingredient or sub-recipe."""

    kind: LineKind
    ref_id: Any
    name: Optional[str]
    change_type: ChangeType
    old_quantity: Optional[float] = None
    new_quantity: Optional[float] = None
    old_unit: Optional[str] = None
    new_unit: Optional[str] = None
    old_cost: Optional[Decimal] = None
    new_cost: Optional[Decimal] = None
    quantity_percent_change: Optional[float] = None


@dataclass
class VersionDiff:
    field_diffs: List[FieldDiff] = field(default_factory=list)
    ingredient_diffs: List[IngredientDiff] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.changed_fields() or self.changed_ingredients())

    def changed_fields(self) -> List[FieldDiff]:
        return [d for d in self.field_diffs if d.change_type is not ChangeType.UNCHANGED]

    def changed_ingredients(self) -> List[IngredientDiff]:
        return [d for d in self.ingredient_diffs if d.change_type is not ChangeType.UNCHANGED]

    def to_dict(self) -> Dict[str, Any]:
        def plain(value):
            return str(value) if isinstance(value, Decimal) else value

        return {
            "fields": [
                {
                    "field": d.field_name,
                    "label": d.label,
                    "old": plain(d.old_value),
                    "new": plain(d.new_value),
                    "change": d.change_type.value,
                    "percent_change": d.percent_change,
                }
                for d in self.field_diffs
            ],
            "ingredients": [
                {
                    "kind": d.kind.value,
                    "ref_id": d.ref_id,
                    "name": d.name,
                    "change": d.change_type.value,
                    "old_quantity": d.old_quantity,
                    "new_quantity": d.new_quantity,
                    "old_unit": d.old_unit,
                    "new_unit": d.new_unit,
                    "old_cost": plain(d.old_cost),
                    "new_cost": plain(d.new_cost),
                    "quantity_percent_change": d.quantity_percent_change,
                }
                for d in self.ingredient_diffs
            ],
        }


# ============================================================================
# Diffing
# ============================================================================


def percent_change(old: Any, new: Any) -> Optional[float]:
    """(new - old) / old * 100, or None when either side is missing or old is 0."""
    if old is None or new is None:
        return None
    old_dec = to_decimal(old)
    if old_dec == 0:
        return None
    return float((to_decimal(new) - old_dec) / old_dec * 100)


def _change_type(equal: bool) -> ChangeType:
    return ChangeType.UNCHANGED if equal else ChangeType.MODIFIED


def _numbers_equal(old: Any, new: Any) -> bool:
    if old is None or new is None:
        return old is None and new is None
    return to_decimal(old) == to_decimal(new)


def _diff_field(name: str, label: str, old: Any, new: Any, numeric: bool) -> FieldDiff:
    if numeric:
        equal = _numbers_equal(old, new)
        change = _change_type(equal)
        pct = percent_change(old, new) if change is ChangeType.MODIFIED else None
        return FieldDiff(name, label, old, new, change, pct)
    return FieldDiff(name, label, old, new, _change_type(old == new))


def _group_lines(lines) -> "OrderedDict[Tuple[LineKind, Any], List[SnapshotLine]]":
    grouped: "OrderedDict[Tuple[LineKind, Any], List[SnapshotLine]]" = OrderedDict()
    for line in lines:
        grouped.setdefault(line.reference, []).append(line)
    return grouped


def _quantity_change(old: SnapshotLine, new: SnapshotLine) -> Optional[float]:
    # Compare in the old line's unit; units that don't convert give None
    new_quantity = try_convert_units(new.quantity, new.unit, old.unit)
    if new_quantity is None:
        return None
    return percent_change(old.quantity, new_quantity)


def _diff_line(old: Optional[SnapshotLine], new: Optional[SnapshotLine]) -> IngredientDiff:
    ref = old if old is not None else new
    name = (new.name if new is not None else None) or ref.name

    if old is None:
        return IngredientDiff(
            ref.kind, ref.ref_id, name, ChangeType.ADDED,
            new_quantity=new.quantity, new_unit=new.unit, new_cost=new.cost,
        )
    if new is None:
        return IngredientDiff(
            ref.kind, ref.ref_id, name, ChangeType.REMOVED,
            old_quantity=old.quantity, old_unit=old.unit, old_cost=old.cost,
        )

    same = (
        _numbers_equal(old.quantity, new.quantity)
        and normalize_unit(old.unit) == normalize_unit(new.unit)
        and _numbers_equal(old.cost, new.cost)
        and _numbers_equal(old.yield_percentage, new.yield_percentage)
    )
    return IngredientDiff(
        ref.kind,
        ref.ref_id,
        name,
        ChangeType.UNCHANGED if same else ChangeType.MODIFIED,
        old_quantity=old.quantity,
        new_quantity=new.quantity,
        old_unit=old.unit,
        new_unit=new.unit,
        old_cost=old.cost,
        new_cost=new.cost,
        quantity_percent_change=None if same else _quantity_change(old, new),
    )


def diff_snapshots(a: RecipeSnapshot, b: RecipeSnapshot) -> VersionDiff:
    """
    Compare two snapshots of a recipe.

    Args:
        a: Older snapshot
        b: Newer snapshot

    Returns:
        VersionDiff with one FieldDiff per tracked field, and one
        IngredientDiff per referenced item occurrence (lines of A in order,
        then lines only B has)
    """
    field_diffs = [
        _diff_field(name, label, getattr(a, name), getattr(b, name), numeric=True)
        for name, label in NUMERIC_FIELDS.items()
    ]
    field_diffs.extend(
        _diff_field(name, label, getattr(a, name), getattr(b, name), numeric=False)
        for name, label in TEXT_FIELDS.items()
    )

    old_groups = _group_lines(a.lines)
    new_groups = _group_lines(b.lines)
    ingredient_diffs: List[IngredientDiff] = []

    for reference, old_lines in old_groups.items():
        new_lines = new_groups.get(reference, [])
        for index, old_line in enumerate(old_lines):
            new_line = new_lines[index] if index < len(new_lines) else None
            ingredient_diffs.append(_diff_line(old_line, new_line))
        for new_line in new_lines[len(old_lines):]:
            ingredient_diffs.append(_diff_line(None, new_line))

    for reference, new_lines in new_groups.items():
        if reference in old_groups:
            continue
        for new_line in new_lines:
            ingredient_diffs.append(_diff_line(None, new_line))

    return VersionDiff(field_diffs=field_diffs, ingredient_diffs=ingredient_diffs)
