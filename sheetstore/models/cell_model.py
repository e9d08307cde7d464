from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Tuple
import re


def column_letter(column: int) -> str:
    """Zero-based column index to spreadsheet letters (0 -> A, 26 -> AA)."""
    letters = ""
    column += 1
    while column > 0:
        column, remainder = divmod(column - 1, 26)
        letters = chr(ord('A') + remainder) + letters
    return letters


def is_blank(value: Optional[str]) -> bool:
    """Absent or empty. Whitespace is content; row writers trim before storing."""
    return value is None or value == ""


def trimmed(value: Optional[str]) -> Optional[str]:
    """Surrounding whitespace removed, or None when nothing is left."""
    if value is None:
        return None
    return value.strip() or None


class Cell(BaseModel):
    """A stored, non-blank cell of one sheet."""

    model_config = ConfigDict(frozen=True)

    row: int = Field(..., ge=0, description="Row index of the cell")
    column: int = Field(..., ge=0, description="Column index of the cell")
    value: str = Field(..., min_length=1, description="Value of the cell")

    @property
    def address(self) -> str:
        return f"{column_letter(self.column)}{self.row + 1}"

    @classmethod
    def from_address(cls, address: str, value: str) -> 'Cell':
        row, column = cls.parse_address(address)
        return cls(row=row, column=column, value=value)

    @staticmethod
    def parse_address(address: str) -> Tuple[int, int]:
        match = re.match(r'^([A-Z]+)(\d+)$', address.upper())
        if not match:
            raise ValueError(f"Invalid cell address: {address}")

        column_letters, row_str = match.groups()

        column = 0
        for char in column_letters:
            column = column * 26 + (ord(char) - ord('A') + 1)

        row = int(row_str) - 1
        if row < 0:
            raise ValueError(f"Row must be at least 1: {row + 1}")

        return row, column - 1

    def to_dict(self):
        return {
            "row": self.row,
            "col": self.column,
            "value": self.value,
            "address": self.address,
        }


class CellUpdate(BaseModel):
    """One entry of a batch cell update; a blank value clears the address."""

    row: int = Field(..., ge=0)
    col: int = Field(..., ge=0)
    value: Optional[str] = None

    @field_validator('value')
    @classmethod
    def empty_to_none(cls, value):
        if value == "":
            return None
        return value
