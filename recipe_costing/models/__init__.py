"""
Database models package.

This package contains the SQLAlchemy ORM models backing the SQL store.
"""

from .base import Base, BaseModel
from .exchange_rate import ExchangeRate
from .ingredient import Ingredient
from .prep_sheet import PrepSheetRecord
from .recipe import Recipe, RecipeLaborStep, RecipeLine
from .recipe_version import RecipeVersion

__all__ = [
    "Base",
    "BaseModel",
    "ExchangeRate",
    "Ingredient",
    "PrepSheetRecord",
    "Recipe",
    "RecipeLaborStep",
    "RecipeLine",
    "RecipeVersion",
]
