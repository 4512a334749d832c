"""Pytest configuration and fixtures for the recipe costing tests."""

import dataclasses
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker

from recipe_costing.models import Base
from recipe_costing.services.database import get_session_factory  # noqa: F401
from recipe_costing.services.dto import IngredientData, RecipeData
from recipe_costing.utils.config import reset_config


class _Reader:
    """get_by_id over a dict, recording every requested id."""

    def __init__(self, rows):
        self._rows = rows
        self.calls = []

    def get_by_id(self, item_id):
        self.calls.append(item_id)
        return self._rows.get(item_id)


class FakeStore:
    """In-memory implementation of every collaborator protocol.

    ``store.ingredients`` / ``store.recipes`` are the readers; the store
    itself serves rates, writes and graph edges.
    """

    def __init__(self):
        self.ingredient_rows = {}
        self.recipe_rows = {}
        self.rates = {}
        self.rate_calls = 0
        self.saved_totals = {}
        self.replaced_lines = {}
        self.ingredients = _Reader(self.ingredient_rows)
        self.recipes = _Reader(self.recipe_rows)

    # Seeding

    def add_ingredient(self, ingredient_id, name, unit, price, currency="USD", **kwargs):
        ingredient = IngredientData(
            id=ingredient_id,
            name=name,
            unit=unit,
            price_per_unit=Decimal(str(price)),
            currency=currency,
            **kwargs,
        )
        self.ingredient_rows[ingredient_id] = ingredient
        return ingredient

    def add_recipe(self, recipe_id, name, lines=(), servings=1, currency="USD", **kwargs):
        recipe = RecipeData(
            id=recipe_id, name=name, servings=servings, currency=currency, lines=lines, **kwargs
        )
        self.recipe_rows[recipe_id] = recipe
        return recipe

    # ExchangeRateReader

    def get_rates(self, base_currency):
        self.rate_calls += 1
        return dict(self.rates)

    # RecipeWriter

    def save_computed_totals(self, recipe_id, totals):
        self.saved_totals[recipe_id] = totals

    def replace_lines(self, recipe_id, lines):
        self.replaced_lines[recipe_id] = list(lines)
        recipe = self.recipe_rows[recipe_id]
        self.recipe_rows[recipe_id] = dataclasses.replace(recipe, lines=tuple(lines))

    # RecipeGraphReader

    def get_sub_recipe_ids(self, recipe_id):
        recipe = self.recipe_rows.get(recipe_id)
        return list(recipe.sub_recipe_ids()) if recipe is not None else []

    def get_parent_recipe_ids(self, recipe_id):
        return [r.id for r in self.recipe_rows.values() if recipe_id in r.sub_recipe_ids()]


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Every test starts from default configuration."""
    for name in (
        "RECIPE_COSTING_ENV",
        "RECIPE_COSTING_BASE_CURRENCY",
        "RECIPE_COSTING_MAX_DEPTH",
        "RECIPE_COSTING_DATA_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def store():
    """Provide an empty in-memory collaborator store."""
    return FakeStore()


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Points the global session factory at it
    4. Drops all tables after the test completes
    """
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    import recipe_costing.services.database as db_module

    original_get_session_factory = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    yield Session

    Session.remove()
    Base.metadata.drop_all(engine)
    db_module.get_session_factory = original_get_session_factory
    engine.dispose()
