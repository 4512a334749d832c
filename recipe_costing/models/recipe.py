"""
Recipe models.

This module contains:
- Recipe: recipe metadata, pricing targets and stored derived totals
- RecipeLine: one ingredient or sub-recipe used by a recipe
- RecipeLaborStep: one timed labor step of a recipe
"""

import json
from decimal import Decimal
from typing import List

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from recipe_costing.utils.constants import (
    DEFAULT_BASE_CURRENCY,
    DEFAULT_WASTE_BUFFER_PERCENTAGE,
)

from .base import BaseModel


class Recipe(BaseModel):
    """
    Recipe model.

    Attributes:
        name: Recipe name (required)
        description: Free text
        category: Optional grouping such as "Sauces"
        servings: Servings one batch produces (> 0)
        yield_amount: Measured batch output, e.g. 2.5 (with yield_unit "l")
        yield_unit: Unit of yield_amount
        prep_time_minutes: Preparation time
        currency: Currency the recipe is costed in
        selling_price: Menu price per batch, optional
        target_cost_percentage: Desired food cost share of the price, in percent
        waste_buffer_percentage: Markup on the ingredient subtotal for waste
        variable_overhead_percentage: Overhead charged on direct labor, in percent
        fixed_overhead_percentage: Overhead charged on the total cost of goods
        labor_tax_data: JSON list of tax percentages charged on direct labor
        total_cost: Derived. Written only by the cost service.
        profit_margin: Derived. Written only by the cost service.
    """

    __tablename__ = "recipes"

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)

    servings = Column(Float, nullable=False, default=1.0)
    yield_amount = Column(Float, nullable=True)
    yield_unit = Column(String(50), nullable=True)
    prep_time_minutes = Column(Integer, nullable=True)

    currency = Column(String(3), nullable=False, default=DEFAULT_BASE_CURRENCY)
    selling_price = Column(Numeric(10, 4), nullable=True)
    target_cost_percentage = Column(Float, nullable=True)
    waste_buffer_percentage = Column(
        Float, nullable=False, default=DEFAULT_WASTE_BUFFER_PERCENTAGE
    )
    variable_overhead_percentage = Column(Float, nullable=True)
    fixed_overhead_percentage = Column(Float, nullable=True)
    labor_tax_data = Column(Text, nullable=True)

    total_cost = Column(Numeric(10, 4), nullable=False, default=Decimal("0.0000"))
    profit_margin = Column(Float, nullable=True)

    lines = relationship(
        "RecipeLine",
        back_populates="recipe",
        foreign_keys="RecipeLine.recipe_id",
        cascade="all, delete-orphan",
        order_by="RecipeLine.position",
    )
    used_in_lines = relationship(
        "RecipeLine",
        back_populates="sub_recipe",
        foreign_keys="RecipeLine.sub_recipe_id",
    )
    versions = relationship(
        "RecipeVersion",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeVersion.version_number",
    )
    labor_steps = relationship(
        "RecipeLaborStep",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeLaborStep.position",
    )

    __table_args__ = (
        Index("idx_recipe_name", "name"),
        CheckConstraint("servings > 0", name="ck_recipe_servings_positive"),
        CheckConstraint(
            "waste_buffer_percentage >= 0", name="ck_recipe_waste_buffer_non_negative"
        ),
    )

    @property
    def labor_tax_percentages(self) -> List[float]:
        if not self.labor_tax_data:
            return []
        return json.loads(self.labor_tax_data)

    @labor_tax_percentages.setter
    def labor_tax_percentages(self, values) -> None:
        self.labor_tax_data = json.dumps([float(v) for v in values]) if values else None

    @property
    def has_overhead_settings(self) -> bool:
        return (
            self.variable_overhead_percentage is not None
            or self.fixed_overhead_percentage is not None
            or self.labor_tax_data is not None
        )


class RecipeLine(BaseModel):
    """
    One line of a recipe: an ingredient or a sub-recipe, never both.

    Attributes:
        recipe_id: Owning recipe
        position: Order within the recipe
        ingredient_id: Referenced ingredient (exclusive with sub_recipe_id)
        sub_recipe_id: Referenced recipe (exclusive with ingredient_id)
        quantity: Amount used (> 0)
        unit: Unit of quantity. Sub-recipe lines may use "batch"/"serving".
        cost: Last computed cost of the line, informational
        yield_percentage: Usable share of a purchased ingredient, in percent
    """

    __tablename__ = "recipe_lines"

    recipe_id = Column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )
    position = Column(Integer, nullable=False, default=0)
    ingredient_id = Column(
        Integer, ForeignKey("ingredients.id", ondelete="RESTRICT"), nullable=True
    )
    sub_recipe_id = Column(
        Integer, ForeignKey("recipes.id", ondelete="RESTRICT"), nullable=True
    )
    quantity = Column(Float, nullable=False)
    unit = Column(String(50), nullable=False)
    cost = Column(Numeric(10, 4), nullable=True)
    yield_percentage = Column(Float, nullable=True)

    recipe = relationship("Recipe", back_populates="lines", foreign_keys=[recipe_id])
    ingredient = relationship("Ingredient", back_populates="recipe_lines")
    sub_recipe = relationship(
        "Recipe", back_populates="used_in_lines", foreign_keys=[sub_recipe_id]
    )

    __table_args__ = (
        Index("idx_recipe_line_recipe", "recipe_id"),
        Index("idx_recipe_line_ingredient", "ingredient_id"),
        Index("idx_recipe_line_sub_recipe", "sub_recipe_id"),
        CheckConstraint(
            "(ingredient_id IS NULL) != (sub_recipe_id IS NULL)",
            name="ck_recipe_line_one_reference",
        ),
        CheckConstraint("quantity > 0", name="ck_recipe_line_quantity_positive"),
        CheckConstraint(
            "sub_recipe_id IS NULL OR sub_recipe_id != recipe_id",
            name="ck_recipe_line_no_self_reference",
        ),
        CheckConstraint(
            "yield_percentage IS NULL OR (yield_percentage > 0 AND yield_percentage <= 100)",
            name="ck_recipe_line_yield_range",
        ),
    )

    def __repr__(self) -> str:
        target = (
            f"ingredient_id={self.ingredient_id}"
            if self.ingredient_id is not None
            else f"sub_recipe_id={self.sub_recipe_id}"
        )
        return f"RecipeLine(recipe_id={self.recipe_id}, {target}, {self.quantity} {self.unit})"


class RecipeLaborStep(BaseModel):
    """
    A timed labor step of a recipe.

    Attributes:
        recipe_id: Owning recipe
        position: Order within the recipe
        name: Step description, e.g. "Assemble"
        workers: People working on the step
        time_minutes: Minutes each worker spends
        hourly_rate: Pay per worker hour, in the recipe's currency
        is_production: False for service steps, which are reported but not
            costed into the recipe
    """

    __tablename__ = "recipe_labor_steps"

    recipe_id = Column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )
    position = Column(Integer, nullable=False, default=0)
    name = Column(String(200), nullable=False)
    workers = Column(Float, nullable=False, default=1.0)
    time_minutes = Column(Float, nullable=False)
    hourly_rate = Column(Numeric(10, 4), nullable=False)
    is_production = Column(Boolean, nullable=False, default=True)

    recipe = relationship("Recipe", back_populates="labor_steps")

    __table_args__ = (
        Index("idx_recipe_labor_step_recipe", "recipe_id"),
        CheckConstraint("workers >= 0", name="ck_labor_step_workers_non_negative"),
        CheckConstraint("time_minutes >= 0", name="ck_labor_step_time_non_negative"),
        CheckConstraint("hourly_rate >= 0", name="ck_labor_step_rate_non_negative"),
    )
