"""
RecipeVersion model: a frozen snapshot of a recipe at a point in time.

The snapshot is stored as JSON text (SQLite has no native JSON type) and
read back through RecipeSnapshot.from_dict. Versions are numbered per recipe
starting at 1; exactly one version per recipe has is_current set.
"""

import json

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class RecipeVersion(BaseModel):
    """
    Attributes:
        recipe_id: Recipe the snapshot belongs to
        version_number: 1, 2, 3... per recipe
        snapshot_data: JSON text of the snapshot
        change_reason: Short label ("Price update", "Rollback to version 2")
        change_notes: Free text
        created_by: Who made the change, when known
        is_current: True for the latest version only
    """

    __tablename__ = "recipe_versions"

    recipe_id = Column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )
    version_number = Column(Integer, nullable=False)
    snapshot_data = Column(Text, nullable=False)
    change_reason = Column(String(200), nullable=True)
    change_notes = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=True)
    is_current = Column(Boolean, nullable=False, default=False)

    recipe = relationship("Recipe", back_populates="versions")

    __table_args__ = (
        UniqueConstraint("recipe_id", "version_number", name="uq_recipe_version_number"),
        Index("idx_recipe_version_recipe", "recipe_id"),
    )

    def get_snapshot_data(self) -> dict:
        """Parsed snapshot JSON; empty dict if missing."""
        if not self.snapshot_data:
            return {}
        return json.loads(self.snapshot_data)

    def set_snapshot_data(self, data: dict) -> None:
        self.snapshot_data = json.dumps(data, sort_keys=True)

    def __repr__(self) -> str:
        return (
            f"RecipeVersion(recipe_id={self.recipe_id}, "
            f"version_number={self.version_number}, is_current={self.is_current})"
        )
