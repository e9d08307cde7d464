from .cell_model import Cell, CellUpdate, column_letter, is_blank, trimmed
from .spreadsheet_model import Spreadsheet, Sheet, Media, SheetView, SpreadsheetSummary
from .user_model import User, Permission, PermissionType

__all__ = [
    # Cell models
    "Cell",
    "CellUpdate",
    "column_letter",
    "is_blank",
    "trimmed",

    # Spreadsheet models
    "Spreadsheet",
    "Sheet",
    "Media",
    "SheetView",
    "SpreadsheetSummary",

    # User models
    "User",
    "Permission",
    "PermissionType",
]
