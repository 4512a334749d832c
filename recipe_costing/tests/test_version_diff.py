"""
Tests for recipe snapshots and the version differ.

Tests cover:
- Field change classification and percent changes
- Line matching by reference, including repeated ingredients
- Quantity changes across compatible units
- Snapshot dictionary storage
"""

from decimal import Decimal

import pytest

from recipe_costing.services.dto import LineKind, RecipeData, RecipeLine
from recipe_costing.services.version_diff import (
    ChangeType,
    RecipeSnapshot,
    SnapshotLine,
    diff_snapshots,
    percent_change,
)


def snapshot(lines=(), **fields):
    values = {"name": "Brownies", "servings": 12, "currency": "USD"}
    values.update(fields)
    return RecipeSnapshot(lines=lines, **values)


def ingredient(ref_id, quantity, unit, name=None, cost=None):
    return SnapshotLine(LineKind.INGREDIENT, ref_id, quantity, unit, name=name, cost=cost)


def field_diff(diff, name):
    return next(d for d in diff.field_diffs if d.field_name == name)


class TestPercentChange:
    """Test percent change arithmetic."""

    def test_increase(self):
        """Test 10 to 15 is +50%."""
        assert percent_change(10, 15) == pytest.approx(50.0)

    def test_decrease(self):
        """Test 8 to 6 is -25%."""
        assert percent_change(Decimal("8"), Decimal("6")) == pytest.approx(-25.0)

    def test_from_zero(self):
        """Test no percentage from zero or missing values."""
        assert percent_change(0, 5) is None
        assert percent_change(None, 5) is None


# ============================================================================
# Field Diff Tests
# ============================================================================


class TestFieldDiffs:
    """Test scalar field comparison."""

    def test_identical_snapshots(self):
        """Test identical snapshots have no changes."""
        a = snapshot(selling_price=Decimal("24.00"))
        assert not diff_snapshots(a, a).has_changes

    def test_modified_numeric(self):
        """Test a servings change carries a percent change."""
        diff = diff_snapshots(snapshot(), snapshot(servings=18))

        servings = field_diff(diff, "servings")
        assert servings.change_type is ChangeType.MODIFIED
        assert servings.percent_change == pytest.approx(50.0)
        assert servings.label == "Servings"
        assert diff.changed_fields() == [servings]

    def test_decimal_precision_ignored(self):
        """Test 24.0 and 24.0000 are the same price."""
        diff = diff_snapshots(
            snapshot(selling_price=Decimal("24.0")), snapshot(selling_price=Decimal("24.0000"))
        )
        assert field_diff(diff, "selling_price").change_type is ChangeType.UNCHANGED

    def test_value_set_or_cleared_is_modified(self):
        """Test a field gaining or losing a value is modified, never added or removed."""
        diff = diff_snapshots(
            snapshot(category="Bars"), snapshot(selling_price=Decimal("30.00"))
        )
        price = field_diff(diff, "selling_price")
        assert price.change_type is ChangeType.MODIFIED
        assert price.percent_change is None
        category = field_diff(diff, "category")
        assert category.change_type is ChangeType.MODIFIED
        assert (category.old_value, category.new_value) == ("Bars", None)

    def test_price_set_from_nothing(self):
        """Test a selling price added to a recipe without one."""
        base = RecipeSnapshot(name="X", servings=4, currency="USD")
        priced = RecipeSnapshot(
            name="X", servings=4, currency="USD", selling_price=Decimal("10")
        )

        price = field_diff(diff_snapshots(base, priced), "selling_price")

        assert price.change_type is ChangeType.MODIFIED
        assert price.percent_change is None
        assert all(
            d.change_type in (ChangeType.UNCHANGED, ChangeType.MODIFIED)
            for d in diff_snapshots(priced, base).field_diffs
        )

    def test_text_modified(self):
        """Test a renamed recipe."""
        diff = diff_snapshots(snapshot(), snapshot(name="Fudge Brownies"))
        name = field_diff(diff, "name")
        assert name.change_type is ChangeType.MODIFIED
        assert (name.old_value, name.new_value) == ("Brownies", "Fudge Brownies")


# ============================================================================
# Line Diff Tests
# ============================================================================


class TestLineDiffs:
    """Test line comparison."""

    def test_quantity_change(self):
        """Test a quantity change on the same ingredient."""
        diff = diff_snapshots(
            snapshot([ingredient(1, 200, "g", "Butter")]),
            snapshot([ingredient(1, 250, "g", "Butter")]),
        )

        (change,) = diff.changed_ingredients()
        assert change.change_type is ChangeType.MODIFIED
        assert change.name == "Butter"
        assert change.quantity_percent_change == pytest.approx(25.0)

    def test_unit_change_compared_in_old_unit(self):
        """Test 1 kg to 1500 g is a 50% increase."""
        diff = diff_snapshots(
            snapshot([ingredient(1, 1, "kg")]), snapshot([ingredient(1, 1500, "g")])
        )
        (change,) = diff.changed_ingredients()
        assert change.quantity_percent_change == pytest.approx(50.0)

    def test_incompatible_unit_change(self):
        """Test a change into an unrelated unit has no percentage."""
        diff = diff_snapshots(
            snapshot([ingredient(1, 1, "kg")]), snapshot([ingredient(1, 2, "cup")])
        )
        (change,) = diff.changed_ingredients()
        assert change.change_type is ChangeType.MODIFIED
        assert change.quantity_percent_change is None

    def test_added_and_removed_lines(self):
        """Test swapped ingredients show as removed and added."""
        diff = diff_snapshots(
            snapshot([ingredient(1, 200, "g", "Butter")]),
            snapshot([ingredient(2, 180, "ml", "Oil")]),
        )

        changes = {(d.ref_id, d.change_type) for d in diff.changed_ingredients()}
        assert changes == {(1, ChangeType.REMOVED), (2, ChangeType.ADDED)}

    def test_reordering_is_not_a_change(self):
        """Test moving lines around does not count as a change."""
        lines = [ingredient(1, 200, "g"), ingredient(2, 3, "each")]
        diff = diff_snapshots(snapshot(lines), snapshot(list(reversed(lines))))
        assert not diff.has_changes

    def test_repeated_ingredient_paired_in_order(self):
        """Test a second occurrence of an ingredient is matched separately."""
        diff = diff_snapshots(
            snapshot([ingredient(1, 100, "g"), ingredient(1, 50, "g")]),
            snapshot([ingredient(1, 100, "g")]),
        )

        (change,) = diff.changed_ingredients()
        assert change.change_type is ChangeType.REMOVED
        assert change.old_quantity == 50

    def test_sub_recipe_and_ingredient_with_same_id(self):
        """Test an ingredient and a sub-recipe sharing an id are distinct."""
        sub = SnapshotLine(LineKind.SUB_RECIPE, 1, 1, "batch")
        diff = diff_snapshots(snapshot([ingredient(1, 1, "kg")]), snapshot([sub]))
        kinds = sorted(d.kind.value for d in diff.changed_ingredients())
        assert kinds == ["ingredient", "sub_recipe"]

    def test_cost_change(self):
        """Test a changed line cost with the same quantity is a modification."""
        diff = diff_snapshots(
            snapshot([ingredient(1, 1, "kg", cost=Decimal("2.00"))]),
            snapshot([ingredient(1, 1, "kg", cost=Decimal("2.40"))]),
        )
        (change,) = diff.changed_ingredients()
        assert change.change_type is ChangeType.MODIFIED
        assert change.quantity_percent_change == pytest.approx(0.0)

    def test_to_dict(self):
        """Test the diff serialises Decimals as strings."""
        diff = diff_snapshots(
            snapshot(selling_price=Decimal("20.00")), snapshot(selling_price=Decimal("25.00"))
        )
        price = next(f for f in diff.to_dict()["fields"] if f["field"] == "selling_price")
        assert price == {
            "field": "selling_price",
            "label": "Selling Price",
            "old": "20.00",
            "new": "25.00",
            "change": "modified",
            "percent_change": pytest.approx(25.0),
        }


# ============================================================================
# Snapshot Tests
# ============================================================================


class TestSnapshots:
    """Test snapshot construction and storage form."""

    def test_from_recipe(self):
        """Test a recipe is frozen with its lines and cached costs."""
        recipe = RecipeData(
            id=5,
            name="Brownies",
            servings=12,
            currency="USD",
            selling_price=Decimal("24.00"),
            lines=[RecipeLine.ingredient(1, 200, "g", name="Butter", cached_cost=Decimal("2.00"))],
        )

        snap = RecipeSnapshot.from_recipe(recipe)

        assert snap.selling_price == Decimal("24.00")
        assert snap.lines[0].name == "Butter"
        assert snap.lines[0].cost == Decimal("2.00")

    def test_dict_round_trip_keeps_decimals(self):
        """Test stored prices come back as Decimal."""
        snap = snapshot(
            [ingredient(1, 200, "g", "Butter", Decimal("2.00"))],
            selling_price=Decimal("24.00"),
            total_cost=Decimal("7.5000"),
        )

        data = snap.to_dict()
        assert data["selling_price"] == "24.00"

        restored = RecipeSnapshot.from_dict(data)
        assert restored == snap
        assert isinstance(restored.total_cost, Decimal)
