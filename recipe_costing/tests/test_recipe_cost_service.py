"""
Tests for recipe cost recomputation.

Tests cover:
- Writing computed totals for one recipe
- Cascading recomputes to every ancestor, nearest first
- Committing a new composition behind the circular reference check
"""

import logging
import threading
from decimal import Decimal

import pytest

from recipe_costing.services.dto import RecipeLine
from recipe_costing.services.exceptions import (
    CircularReferenceError,
    RecipeNotFound,
    ValidationError,
)
from recipe_costing.services.recipe_cost_service import RecipeCostService


@pytest.fixture
def service(store):
    return RecipeCostService.from_store(store, base_currency="USD", max_depth=8)


@pytest.fixture
def chain(store):
    """Butter -> Dough (D) -> Pie Base (B) -> Apple Pie (A)."""
    store.add_ingredient(1, "Butter", "kg", "10.00")
    store.add_recipe(4, "Dough", lines=[RecipeLine.ingredient(1, 1, "kg")])
    store.add_recipe(2, "Pie Base", lines=[RecipeLine.sub_recipe(4, 1, "batch")])
    store.add_recipe(
        1,
        "Apple Pie",
        lines=[RecipeLine.sub_recipe(2, 1, "batch")],
        selling_price=Decimal("40.00"),
    )
    return store


class TestRecompute:
    """Test single-recipe recompute."""

    def test_totals_written(self, service, chain):
        """Test the total and margin are stored for the recipe."""
        breakdown = service.recompute(1)

        assert breakdown.total_cost == Decimal("10.00")
        totals = chain.saved_totals[1]
        assert totals.total_cost == Decimal("10.0000")
        assert totals.profit_margin == pytest.approx(75.0)

    def test_no_selling_price_no_margin(self, service, chain):
        """Test the margin is None without a selling price."""
        service.recompute(4)
        assert chain.saved_totals[4].profit_margin is None

    def test_stored_total_rounded(self, service, store):
        """Test stored totals keep four decimal places."""
        store.add_ingredient(1, "Saffron", "g", "0.33333")
        store.add_recipe(1, "Paella", lines=[RecipeLine.ingredient(1, 1, "g")])

        service.recompute(1)
        assert store.saved_totals[1].total_cost == Decimal("0.3333")

    def test_line_costs_written(self, service, store):
        """Test each persisted line gets its own cost, and unpriced lines get None."""
        store.add_ingredient(1, "Flour", "kg", "2.00")
        store.add_ingredient(2, "Milk", "l", "1.50")
        store.add_recipe(
            1,
            "Bread",
            lines=[
                RecipeLine.ingredient(1, 500, "g", line_id=11),
                RecipeLine.ingredient(2, 3, "each", line_id=12),
                RecipeLine.ingredient(1, 250, "g"),
            ],
        )

        service.recompute(1)

        assert store.saved_totals[1].line_costs == {11: Decimal("1.0000"), 12: None}

    def test_unknown_recipe(self, service):
        """Test recomputing an unknown recipe raises RecipeNotFound."""
        with pytest.raises(RecipeNotFound):
            service.recompute(99)

    def test_recompute_logged(self, service, chain, caplog):
        """Test a recompute logs its outcome."""
        with caplog.at_level(logging.INFO, logger="recipe_costing.services"):
            service.recompute(1)

        records = [r for r in caplog.records if r.getMessage() == "recompute: success"]
        assert len(records) == 1
        assert records[0].recipe_id == 1
        assert records[0].total_cost == "10.0000"


class TestCascade:
    """Test recompute of a recipe and its ancestors."""

    def test_ancestor_ids_nearest_first(self, service, chain):
        """Test ancestors come back in breadth-first order."""
        assert service.ancestor_ids(4) == [2, 1]
        assert service.ancestor_ids(1) == []

    def test_diamond_ancestors_once(self, service, store):
        """Test a recipe reached by two paths appears once."""
        store.add_recipe(4, "Base")
        store.add_recipe(2, "Left", lines=[RecipeLine.sub_recipe(4, 1, "batch")])
        store.add_recipe(3, "Right", lines=[RecipeLine.sub_recipe(4, 1, "batch")])
        store.add_recipe(
            1,
            "Top",
            lines=[RecipeLine.sub_recipe(2, 1, "batch"), RecipeLine.sub_recipe(3, 1, "batch")],
        )

        assert service.ancestor_ids(4) == [2, 3, 1]

    def test_cascade_order(self, service, chain):
        """Test the changed recipe is recomputed first, then its parents."""
        results = service.recompute_cascade(4)

        assert list(results) == [4, 2, 1]
        assert set(chain.saved_totals) == {4, 2, 1}

    def test_ingredient_price_change_reaches_top(self, service, chain):
        """Test a price change shows up in every ancestor's stored total."""
        service.recompute_cascade(4)
        chain.add_ingredient(1, "Butter", "kg", "12.00")

        service.recompute_cascade(4)

        assert chain.saved_totals[1].total_cost == Decimal("12.0000")
        assert chain.saved_totals[2].total_cost == Decimal("12.0000")


class TestCommitComposition:
    """Test validated composition changes."""

    def test_composition_change_holds_lock(self, service):
        """Test other threads cannot take the lock inside the block."""

        def free_elsewhere():
            result = []

            def attempt():
                acquired = service._composition_lock.acquire(blocking=False)
                if acquired:
                    service._composition_lock.release()
                result.append(acquired)

            worker = threading.Thread(target=attempt)
            worker.start()
            worker.join()
            return result[0]

        with service.composition_change():
            assert not free_elsewhere()
        assert free_elsewhere()

    def test_commit_writes_and_cascades(self, service, chain):
        """Test new lines are written and the recipe and ancestors recomputed."""
        chain.add_ingredient(5, "Sugar", "kg", "2.00")
        lines = [RecipeLine.ingredient(1, 1, "kg"), RecipeLine.ingredient(5, 1, "kg")]

        results = service.commit_composition(4, lines)

        assert chain.replaced_lines[4] == lines
        assert list(results) == [4, 2, 1]
        assert chain.saved_totals[1].total_cost == Decimal("12.0000")

    def test_cycle_rejected_without_write(self, service, chain):
        """Test a cycle-forming change is rejected and nothing is written."""
        with pytest.raises(CircularReferenceError) as exc_info:
            service.commit_composition(
                4, [RecipeLine.sub_recipe(1, 1, "batch")], recipe_names={4: "Dough"}
            )

        assert exc_info.value.path == [4, 1, 2, 4]
        assert chain.replaced_lines == {}
        assert chain.saved_totals == {}

    def test_self_reference_rejected(self, service, chain):
        """Test a recipe cannot be committed with itself as a line."""
        with pytest.raises(CircularReferenceError):
            service.commit_composition(2, [RecipeLine.sub_recipe(2, 1, "batch")])
        assert chain.replaced_lines == {}

    def test_non_line_rejected(self, service, chain):
        """Test anything other than a RecipeLine is a validation error."""
        with pytest.raises(ValidationError) as exc_info:
            service.commit_composition(4, [RecipeLine.ingredient(1, 1, "kg"), {"qty": 1}])
        assert exc_info.value.errors == ["Line 2: not a recipe line"]
        assert chain.replaced_lines == {}

    def test_commit_logged(self, service, chain, caplog):
        """Test a committed change is logged."""
        with caplog.at_level(logging.INFO, logger="recipe_costing.services"):
            service.commit_composition(4, [RecipeLine.ingredient(1, 2, "kg")])

        records = [
            r for r in caplog.records if r.getMessage() == "commit_composition: committed"
        ]
        assert len(records) == 1
        assert records[0].line_count == 1
