"""
Declarative base and shared columns for the recipe costing tables.

Every model gets:
- id: Integer primary key
- created_at / updated_at: UTC timestamps maintained on insert and update
- to_dict(): plain-dict view of the row
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.orm import declarative_base

from recipe_costing.utils.datetime_utils import utc_now

Base = declarative_base()


class BaseModel(Base):
    """Abstract base with a primary key and timestamps."""

    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self, include_relationships: bool = False) -> Dict[str, Any]:
        """
        Convert the row to a dictionary.

        Datetimes become ISO strings and Decimals become strings, so the
        result can go straight to json.dumps.

        Args:
            include_relationships: Also include loaded related rows
        """
        result = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, Decimal):
                value = str(value)
            result[column.name] = value

        if include_relationships:
            for relationship in self.__mapper__.relationships:
                rel_value = getattr(self, relationship.key)
                if rel_value is None:
                    result[relationship.key] = None
                elif isinstance(rel_value, list):
                    result[relationship.key] = [item.to_dict() for item in rel_value]
                else:
                    result[relationship.key] = rel_value.to_dict()

        return result

    def __repr__(self) -> str:
        attrs = []
        if getattr(self, "id", None) is not None:
            attrs.append(f"id={self.id}")
        if getattr(self, "name", None) is not None:
            attrs.append(f"name='{self.name}'")
        return f"{self.__class__.__name__}({', '.join(attrs)})"
