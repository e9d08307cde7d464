"""
Structural and cell mutations on one sheet.

Every operation checks EDIT access on the owning spreadsheet, then runs as a
single batch on the sheet's grid store: the per-sheet lock serializes it
against other writers (including the read-max-then-append sequence of row
appends) and the staged grid is published only if the whole operation
succeeds.

Shifts remove every moving cell before writing any of them back, so a moved
cell can never land on a cell that has not moved yet.
"""

from typing import List, Optional, Sequence, Tuple

from ..config.logging_config import LoggerMixin
from ..exceptions import InvalidArgumentError, InvalidStateError
from ..models.cell_model import Cell, CellUpdate, is_blank, trimmed
from ..models.spreadsheet_model import Sheet, Spreadsheet
from ..models.user_model import PermissionType
from ..storage.grid_store import GridStore, GridStoreRegistry, SparseGrid
from ..storage.repository import SpreadsheetRepository
from .permission_gate import PermissionGate

RowValues = Sequence[Optional[str]]


def _require_index(name: str, value: int) -> None:
    if value < 0:
        raise InvalidArgumentError(f"{name} must be non-negative, got {value}")


def _write_row(grid: SparseGrid, row: int, values: RowValues) -> int:
    """Write trimmed non-blank values at (row, position). Returns cells written."""
    written = 0
    for col, value in enumerate(values):
        value = trimmed(value)
        if value is not None:
            grid.upsert(row, col, value)
            written += 1
    return written


def _shift(grid: SparseGrid, cells: List[Cell], row_delta: int = 0, column_delta: int = 0) -> None:
    for cell in cells:
        grid.remove(cell.row, cell.column)
    for cell in cells:
        grid.upsert(cell.row + row_delta, cell.column + column_delta, cell.value)


class GridMutationEngine(LoggerMixin):

    def __init__(self, repository: SpreadsheetRepository, grids: GridStoreRegistry,
                 gate: PermissionGate):
        self.repository = repository
        self.grids = grids
        self.gate = gate

    def _resolve(self, sheet_id: str, username: str,
                 required: PermissionType = PermissionType.EDIT) -> Tuple[Spreadsheet, Sheet, GridStore]:
        spreadsheet, sheet = self.repository.get_sheet(sheet_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize(spreadsheet, user, required)
        return spreadsheet, sheet, self.grids.for_sheet(sheet.id)

    def update_cells(self, sheet_id: str, cells: Sequence[CellUpdate], username: str) -> int:
        """Apply cell writes in list order; a blank value deletes the cell."""
        _, sheet, store = self._resolve(sheet_id, username)
        with store.batch() as grid:
            for update in cells:
                _require_index("row", update.row)
                _require_index("col", update.col)
                if is_blank(update.value):
                    grid.remove(update.row, update.col)
                else:
                    grid.upsert(update.row, update.col, update.value)
        sheet.touch()
        self.logger.debug("Cells updated", sheet_id=sheet_id, count=len(cells))
        return len(cells)

    def update_row(self, sheet_id: str, row: int, values: RowValues, username: str) -> int:
        """Replace a whole row; trailing blanks leave no cells."""
        _require_index("row", row)
        _, sheet, store = self._resolve(sheet_id, username)
        with store.batch() as grid:
            for col, _value in grid.row_slice(row):
                grid.remove(row, col)
            written = _write_row(grid, row, values)
        sheet.touch()
        return written

    def append_row(self, sheet_id: str, values: RowValues, username: str) -> int:
        """Write values below the last occupied row. Returns the new row index."""
        _, sheet, store = self._resolve(sheet_id, username)
        with store.batch() as grid:
            max_row = grid.max_row_index()
            row = max_row + 1 if max_row is not None else 0
            _write_row(grid, row, values)
        sheet.touch()
        self.logger.debug("Row appended", sheet_id=sheet_id, row=row)
        return row

    def append_rows(self, sheet_id: str, rows: Sequence[RowValues], username: str) -> int:
        """
        Append rows at consecutive indices in input order.
        A fully blank row still takes an index. Returns the number of rows.
        """
        _, sheet, store = self._resolve(sheet_id, username)
        with store.batch() as grid:
            max_row = grid.max_row_index()
            start = max_row + 1 if max_row is not None else 0
            for offset, values in enumerate(rows):
                _write_row(grid, start + offset, values)
        sheet.touch()
        self.logger.info("Rows appended", sheet_id=sheet_id, start_row=start, count=len(rows))
        return len(rows)

    def delete_rows(self, sheet_id: str, start_row: int, count: int, username: str) -> None:
        """Clear [start_row, start_row + count) and move the rows below up by count."""
        _require_index("start_row", start_row)
        if count < 1:
            raise InvalidArgumentError(f"count must be at least 1, got {count}")
        _, sheet, store = self._resolve(sheet_id, username)
        last = start_row + count - 1
        with store.batch() as grid:
            for cell in grid.rows_from(start_row):
                if cell.row > last:
                    break
                grid.remove(cell.row, cell.column)
            _shift(grid, grid.rows_above(last), row_delta=-count)
        sheet.touch()
        self.logger.info("Rows deleted", sheet_id=sheet_id, start_row=start_row, count=count)

    def insert_rows(self, sheet_id: str, start_row: int, count: int, username: str) -> None:
        """Open count blank rows at start_row, moving existing rows down."""
        _require_index("start_row", start_row)
        if count < 1:
            raise InvalidArgumentError(f"count must be at least 1, got {count}")
        _, sheet, store = self._resolve(sheet_id, username)
        with store.batch() as grid:
            _shift(grid, grid.rows_from(start_row), row_delta=count)
        sheet.touch()
        self.logger.info("Rows inserted", sheet_id=sheet_id, start_row=start_row, count=count)

    def insert_column(self, sheet_id: str, col: int, values: RowValues, username: str) -> None:
        """Move columns >= col right by one, then fill col from values (one per row)."""
        _require_index("col", col)
        _, sheet, store = self._resolve(sheet_id, username)
        with store.batch() as grid:
            _shift(grid, grid.columns_from(col), column_delta=1)
            for row, value in enumerate(values):
                value = trimmed(value)
                if value is not None:
                    grid.upsert(row, col, value)
        sheet.touch()
        self.logger.info("Column inserted", sheet_id=sheet_id, col=col)

    def delete_column(self, sheet_id: str, col: int, username: str) -> None:
        """Clear a column and move the columns to its right left by one."""
        _require_index("col", col)
        _, sheet, store = self._resolve(sheet_id, username)
        with store.batch() as grid:
            for row, _value in grid.column_slice(col):
                grid.remove(row, col)
            _shift(grid, grid.columns_above(col), column_delta=-1)
        sheet.touch()
        self.logger.info("Column deleted", sheet_id=sheet_id, col=col)

    def delete_sheet(self, sheet_id: str, username: str) -> None:
        """
        Delete a sheet and its cells, then renumber the remaining sheets
        0..n-1 in their previous order. The last sheet cannot be deleted.
        """
        spreadsheet, sheet, store = self._resolve(sheet_id, username)
        with store.lock:
            with self.repository.transaction():
                if len(spreadsheet.sheets) <= 1:
                    raise InvalidStateError("Cannot delete the last sheet in a spreadsheet")
                self.repository.remove_sheet(spreadsheet, sheet.id)
                remaining = sorted(spreadsheet.sheets, key=lambda s: s.order_index)
                for index, other in enumerate(remaining):
                    if other.order_index != index:
                        other.order_index = index
                self.repository.save_spreadsheet(spreadsheet)
            dropped = self.grids.drop(sheet.id)
        self.logger.info("Sheet deleted", sheet_id=sheet_id, spreadsheet_id=spreadsheet.id,
                         cells_dropped=dropped)
