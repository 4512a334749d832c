"""
Ingredient model: a purchasable item with a price per pricing unit.
"""

from decimal import Decimal

from sqlalchemy import CheckConstraint, Column, Float, Index, Numeric, String
from sqlalchemy.orm import relationship

from recipe_costing.utils.constants import DEFAULT_BASE_CURRENCY

from .base import BaseModel


class Ingredient(BaseModel):
    """
    Ingredient with its current price.

    Attributes:
        name: Display name (required)
        category: Optional grouping such as "Dairy"
        unit: Unit the price is expressed in (e.g. "kg")
        price_per_unit: Price of one unit, in ``currency``
        currency: Three-letter currency code
        current_stock: Stock on hand, in ``unit``
    """

    __tablename__ = "ingredients"

    name = Column(String(200), nullable=False)
    category = Column(String(100), nullable=True)
    unit = Column(String(50), nullable=False)
    price_per_unit = Column(Numeric(10, 4), nullable=False, default=Decimal("0.0000"))
    currency = Column(String(3), nullable=False, default=DEFAULT_BASE_CURRENCY)
    current_stock = Column(Float, nullable=False, default=0.0)

    recipe_lines = relationship("RecipeLine", back_populates="ingredient")

    __table_args__ = (
        Index("idx_ingredient_name", "name"),
        CheckConstraint("price_per_unit >= 0", name="ck_ingredient_price_non_negative"),
        CheckConstraint("current_stock >= 0", name="ck_ingredient_stock_non_negative"),
    )
