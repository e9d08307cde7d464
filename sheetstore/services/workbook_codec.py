"""
Excel workbook (.xlsx) export/import through openpyxl.

Cell typing does not survive the trip: every imported cell is collapsed to a
string by the converter registered for its source kind.
"""

import io
import re
import zipfile
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.utils.exceptions import InvalidFileException

from ..config.logging_config import LoggerMixin, PerformanceLogger
from ..config.settings import Settings, get_settings
from ..exceptions import ArchiveFormatError, InvalidArgumentError
from ..models.spreadsheet_model import SpreadsheetSummary
from ..models.user_model import PermissionType
from ..storage.grid_store import GridStoreRegistry
from ..storage.repository import SpreadsheetRepository
from .permission_gate import PermissionGate
from .spreadsheet_service import CellTriple, SpreadsheetService

MAX_TITLE_LENGTH = 31
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_ILLEGAL_TITLE_CHARS = re.compile(r"[\\/?*\[\]:]")


class CellSourceKind(str, Enum):
    STRING = "string"
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    DATE = "date"
    FORMULA = "formula"
    ERROR = "error"
    BLANK = "blank"


def classify(cell) -> CellSourceKind:
    value = cell.value
    if value is None or value == "":
        return CellSourceKind.BLANK
    if cell.data_type == "f":
        return CellSourceKind.FORMULA
    if cell.data_type == "e":
        return CellSourceKind.ERROR
    if isinstance(value, bool):
        return CellSourceKind.BOOLEAN
    if isinstance(value, (datetime, date, time, timedelta)):
        return CellSourceKind.DATE
    if isinstance(value, (int, float)):
        return CellSourceKind.NUMERIC
    return CellSourceKind.STRING


def _plain(value) -> Optional[str]:
    """String form of an already evaluated value (a formula's cached result)."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str) and value.startswith("#"):
        return None
    return str(value)


Converter = Callable[[object, object], Optional[str]]

CONVERTERS: Dict[CellSourceKind, Converter] = {
    CellSourceKind.STRING: lambda value, cached: str(value),
    CellSourceKind.NUMERIC: lambda value, cached: str(value),
    CellSourceKind.BOOLEAN: lambda value, cached: "true" if value else "false",
    CellSourceKind.DATE: lambda value, cached: str(value),
    CellSourceKind.FORMULA: lambda value, cached: _plain(cached),
    CellSourceKind.ERROR: lambda value, cached: None,
    CellSourceKind.BLANK: lambda value, cached: None,
}


def sheet_title(name: str) -> str:
    """Make a sheet name legal as a worksheet title."""
    title = _ILLEGAL_TITLE_CHARS.sub("_", name)[:MAX_TITLE_LENGTH]
    return title or "Sheet"


def decode_workbook(data: bytes) -> List[Tuple[str, List[CellTriple]]]:
    """Worksheets in workbook order as (title, [(row, col, value)]), zero-based."""
    try:
        formulas = load_workbook(io.BytesIO(data))
        cached = load_workbook(io.BytesIO(data), data_only=True)
    except (zipfile.BadZipFile, InvalidFileException, KeyError, ValueError, OSError) as e:
        raise ArchiveFormatError(f"Unreadable workbook: {e}") from e

    sheets = []
    for worksheet in formulas.worksheets:
        values = cached[worksheet.title]
        cells: List[CellTriple] = []
        for row in worksheet.iter_rows():
            for cell in row:
                kind = classify(cell)
                cached_value = values.cell(row=cell.row, column=cell.column).value \
                    if kind is CellSourceKind.FORMULA else None
                text = CONVERTERS[kind](cell.value, cached_value)
                if text:
                    cells.append((cell.row - 1, cell.column - 1, text))
        sheets.append((worksheet.title, cells))
    return sheets


def encode_workbook(sheets: Sequence[Tuple[str, Sequence[CellTriple]]]) -> bytes:
    """Write every value as a string cell, one worksheet per sheet in order."""
    workbook = Workbook()
    workbook.remove(workbook.active)
    for name, cells in sheets:
        worksheet = workbook.create_sheet(title=sheet_title(name))
        for row, col, value in cells:
            value = ILLEGAL_CHARACTERS_RE.sub("", value)
            if not value:
                continue
            cell = worksheet.cell(row=row + 1, column=col + 1, value=value)
            # stored text, never evaluated
            cell.data_type = "s"
    if not workbook.worksheets:
        workbook.create_sheet(title="Sheet")

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class WorkbookCodec(LoggerMixin):

    def __init__(self, repository: SpreadsheetRepository, grids: GridStoreRegistry,
                 gate: PermissionGate, spreadsheets: SpreadsheetService,
                 settings: Optional[Settings] = None):
        self.repository = repository
        self.grids = grids
        self.gate = gate
        self.spreadsheets = spreadsheets
        self.settings = settings or get_settings()

    def export_workbook(self, spreadsheet_id: str, username: str) -> bytes:
        spreadsheet = self.repository.get_spreadsheet(spreadsheet_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize(spreadsheet, user, PermissionType.VIEW)

        with PerformanceLogger("workbook export", self.logger, spreadsheet_id=spreadsheet_id):
            sheets = [
                (sheet.name, [(cell.row, cell.column, cell.value)
                              for cell in self.grids.for_sheet(sheet.id).cells()])
                for sheet in spreadsheet.ordered_sheets()
            ]
            return encode_workbook(sheets)

    def import_workbook(self, data: bytes, filename: Optional[str], username: str) -> SpreadsheetSummary:
        """Create a spreadsheet named after the uploaded file, one sheet per worksheet."""
        owner = self.repository.get_user_by_username(username)
        if len(data) > self.settings.MAX_ARCHIVE_SIZE:
            raise InvalidArgumentError(
                f"Workbook exceeds maximum size of {self.settings.MAX_ARCHIVE_SIZE} bytes")

        with PerformanceLogger("workbook import", self.logger, owner=username):
            sheets = decode_workbook(data)
            spreadsheet = self.spreadsheets.create_imported(
                owner, filename or "Imported workbook", None, sheets)

        self.logger.info("Workbook imported", spreadsheet_id=spreadsheet.id, sheets=len(sheets))
        return self.spreadsheets.summarize(spreadsheet, owner)
