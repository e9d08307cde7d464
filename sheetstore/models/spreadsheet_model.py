"""
Spreadsheet data models.
A Spreadsheet exclusively owns its ordered Sheets and its Media; cells live in
per-sheet grid stores keyed by sheet id, and users are referenced by id only.
"""

from typing import Dict, List, Optional, Any
from datetime import datetime
from pydantic import BaseModel, Field
import copy
import uuid

from .cell_model import Cell
from .user_model import utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class TimestampedModel(BaseModel):
    """Refreshes updated_at on every attribute write."""

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def __setattr__(self, name: str, value: Any) -> None:
        super().__setattr__(name, value)
        if name in type(self).model_fields and name not in ("created_at", "updated_at"):
            super().__setattr__("updated_at", utcnow())

    def touch(self) -> None:
        super().__setattr__("updated_at", utcnow())

    def field_state(self) -> Dict[str, Any]:
        """Shallow copy of every field value except the timestamps, for restore_fields()."""
        return {
            name: copy.copy(getattr(self, name))
            for name in type(self).model_fields
            if name not in ("created_at", "updated_at")
        }

    def restore_fields(self, state: Dict[str, Any]) -> None:
        for name, value in state.items():
            super().__setattr__(name, value)


class Sheet(TimestampedModel):
    """One tab of a spreadsheet. row_count/column_count are display hints only."""

    id: str = Field(default_factory=_new_id)
    name: str = Field(..., min_length=1)
    spreadsheet_id: str
    order_index: int = Field(default=0, ge=0)
    row_count: int = Field(default=1000, ge=1)
    column_count: int = Field(default=26, ge=1)

    def extend_dimensions(self, rows: int, columns: int) -> None:
        """Grow the advisory dimensions so they cover rows x columns."""
        if rows > self.row_count:
            self.row_count = rows
        if columns > self.column_count:
            self.column_count = columns

    def summary(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "order_index": self.order_index}


class Media(BaseModel):
    """Attachment metadata. storage_key names the bytes in media storage."""

    id: str = Field(default_factory=_new_id)
    spreadsheet_id: str
    filename: str
    content_type: Optional[str] = None
    file_size: int = Field(default=0, ge=0)
    storage_key: str
    uploaded_at: datetime = Field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "spreadsheet_id": self.spreadsheet_id,
            "filename": self.filename,
            "content_type": self.content_type,
            "file_size": self.file_size,
            "uploaded_at": self.uploaded_at.isoformat(),
        }


class Spreadsheet(TimestampedModel):
    """
    Spreadsheet metadata plus its owned sheets and media.
    Sheet order is significant: sheets is kept sorted by order_index.
    """

    id: str = Field(default_factory=_new_id)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    owner_id: str
    sheets: List[Sheet] = Field(default_factory=list)
    media_files: List[Media] = Field(default_factory=list)

    def ordered_sheets(self) -> List[Sheet]:
        return sorted(self.sheets, key=lambda sheet: sheet.order_index)

    def find_sheet(self, sheet_id: str) -> Optional[Sheet]:
        return next((sheet for sheet in self.sheets if sheet.id == sheet_id), None)

    def find_media(self, media_id: str) -> Optional[Media]:
        return next((media for media in self.media_files if media.id == media_id), None)


class SheetView(BaseModel):
    """Read view of one sheet with its stored cells ordered by (row, column)."""

    id: str
    name: str
    spreadsheet_id: str
    order_index: int
    row_count: int
    column_count: int
    created_at: datetime
    updated_at: datetime
    cells: List[Cell] = Field(default_factory=list)

    @classmethod
    def build(cls, sheet: Sheet, cells: List[Cell]) -> 'SheetView':
        return cls(cells=cells, **sheet.model_dump())

    def value_at(self, row: int, column: int) -> Optional[str]:
        for cell in self.cells:
            if cell.row == row and cell.column == column:
                return cell.value
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "spreadsheet_id": self.spreadsheet_id,
            "order_index": self.order_index,
            "row_count": self.row_count,
            "column_count": self.column_count,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "cells": [cell.to_dict() for cell in self.cells],
        }


class SpreadsheetSummary(BaseModel):
    """Spreadsheet metadata as seen by one caller."""

    id: str
    name: str
    description: Optional[str] = None
    owner_username: str
    user_permission: Optional[str] = None
    media_count: int = 0
    sheets: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump()
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        return data
