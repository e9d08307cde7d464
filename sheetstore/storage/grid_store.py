"""
Sparse cell storage, one store per sheet.

Only non-blank cells are held, keyed by (row, column). Mutations go through
GridStore.batch(), which serializes writers on the sheet and publishes the
staged result in a single assignment, so readers never observe a half-applied
structural shift.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Set, Tuple

from ..exceptions import InvalidArgumentError, NotFoundError
from ..models.cell_model import Cell, is_blank

Address = Tuple[int, int]


class SparseGrid:
    """Point and range queries over a {(row, col): value} mapping."""

    def __init__(self, cells: Optional[Dict[Address, str]] = None):
        self._cells: Dict[Address, str] = dict(cells or {})

    def __len__(self) -> int:
        return len(self._cells)

    def __contains__(self, address: Address) -> bool:
        return address in self._cells

    def get(self, row: int, col: int) -> Optional[str]:
        return self._cells.get((row, col))

    def upsert(self, row: int, col: int, value: str) -> None:
        if row < 0 or col < 0:
            raise InvalidArgumentError(f"Cell address must be non-negative: ({row}, {col})")
        if is_blank(value):
            raise InvalidArgumentError(f"Blank value cannot be stored at ({row}, {col})")
        self._cells[(row, col)] = value

    def remove(self, row: int, col: int) -> None:
        self._cells.pop((row, col), None)

    def clear(self) -> None:
        self._cells.clear()

    def row_slice(self, row: int) -> List[Tuple[int, str]]:
        """(col, value) pairs stored in one row, ordered by column."""
        return sorted((c, v) for (r, c), v in self._cells.items() if r == row)

    def column_slice(self, col: int) -> List[Tuple[int, str]]:
        """(row, value) pairs stored in one column, ordered by row."""
        return sorted((r, v) for (r, c), v in self._cells.items() if c == col)

    def rows_above(self, row: int) -> List[Cell]:
        """Cells with a row index strictly greater than row."""
        return self._select(lambda r, c: r > row)

    def rows_from(self, row: int) -> List[Cell]:
        """Cells with a row index greater than or equal to row."""
        return self._select(lambda r, c: r >= row)

    def columns_from(self, col: int) -> List[Cell]:
        """Cells with a column index greater than or equal to col."""
        return self._select(lambda r, c: c >= col)

    def columns_above(self, col: int) -> List[Cell]:
        """Cells with a column index strictly greater than col."""
        return self._select(lambda r, c: c > col)

    def max_row_index(self) -> Optional[int]:
        if not self._cells:
            return None
        return max(r for r, _ in self._cells)

    def max_column_index(self) -> Optional[int]:
        if not self._cells:
            return None
        return max(c for _, c in self._cells)

    def cells(self) -> List[Cell]:
        """Every stored cell ordered by (row, column)."""
        return self._select(lambda r, c: True)

    def to_dict(self) -> Dict[Address, str]:
        return dict(self._cells)

    def _select(self, predicate) -> List[Cell]:
        return [
            Cell(row=r, column=c, value=v)
            for (r, c), v in sorted(self._cells.items())
            if predicate(r, c)
        ]


class GridStore(SparseGrid):
    """
    Committed cells of one sheet plus its mutation lock.

    Reads see the last committed state. Writes happen on the staged grid
    yielded by batch(); a batch that raises leaves the store untouched.
    """

    def __init__(self, sheet_id: str, cells: Optional[Dict[Address, str]] = None):
        super().__init__(cells)
        self.sheet_id = sheet_id
        self._lock = threading.RLock()
        self._staged: Optional[SparseGrid] = None

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @contextmanager
    def batch(self) -> Iterator[SparseGrid]:
        with self._lock:
            if self._staged is not None:
                # Nested batch on the owning thread joins the outer one
                yield self._staged
                return

            self._staged = SparseGrid(self._cells)
            try:
                yield self._staged
                self._cells = self._staged._cells
            finally:
                self._staged = None

    def upsert(self, row: int, col: int, value: str) -> None:
        with self.batch() as grid:
            grid.upsert(row, col, value)

    def remove(self, row: int, col: int) -> None:
        with self.batch() as grid:
            grid.remove(row, col)

    def clear(self) -> None:
        with self.batch() as grid:
            grid.clear()


class GridStoreRegistry:
    """
    Maps sheet ids to their grid stores. A dropped sheet id is retired for
    good: sheet ids are never reused, so a late caller that resolved the
    sheet before it was deleted gets NotFound instead of a fresh empty store.
    """

    def __init__(self):
        self._stores: Dict[str, GridStore] = {}
        self._retired: Set[str] = set()
        self._lock = threading.Lock()

    def __contains__(self, sheet_id: str) -> bool:
        return sheet_id in self._stores

    def for_sheet(self, sheet_id: str) -> GridStore:
        with self._lock:
            store = self._stores.get(sheet_id)
            if store is None:
                if sheet_id in self._retired:
                    raise NotFoundError("Sheet", sheet_id)
                store = GridStore(sheet_id)
                self._stores[sheet_id] = store
            return store

    def drop(self, sheet_id: str) -> int:
        """Forget a sheet's cells. Returns how many cells were dropped."""
        with self._lock:
            store = self._stores.pop(sheet_id, None)
            self._retired.add(sheet_id)
        if store is None:
            return 0
        with store.lock:
            return len(store)
