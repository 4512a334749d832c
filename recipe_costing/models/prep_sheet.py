"""
PrepSheetRecord model: a generated prep sheet persisted as a document.

Records are immutable once written; the sheet body (items with their
breakdowns and the recipe selection) is stored as JSON text.
"""

import json

from sqlalchemy import Column, Date, Index, String, Text

from .base import BaseModel


class PrepSheetRecord(BaseModel):
    """
    Attributes:
        name: Sheet title
        sheet_date: Day the sheet is for
        shift: Optional shift label ("AM", "PM")
        prep_cook_name: Optional assignee
        notes: Free text
        recipes_data: JSON list of the recipe selections
        items_data: JSON list of aggregated items with breakdowns
    """

    __tablename__ = "prep_sheets"

    name = Column(String(200), nullable=False)
    sheet_date = Column(Date, nullable=True)
    shift = Column(String(50), nullable=True)
    prep_cook_name = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    recipes_data = Column(Text, nullable=False)
    items_data = Column(Text, nullable=False)

    __table_args__ = (Index("idx_prep_sheet_date", "sheet_date"),)

    def get_recipes_data(self) -> list:
        if not self.recipes_data:
            return []
        return json.loads(self.recipes_data)

    def get_items_data(self) -> list:
        if not self.items_data:
            return []
        return json.loads(self.items_data)
