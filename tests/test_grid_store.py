import threading

import pytest

from sheetstore.exceptions import InvalidArgumentError, NotFoundError
from sheetstore.storage.grid_store import GridStore, GridStoreRegistry, SparseGrid


@pytest.fixture
def grid():
    return SparseGrid({(0, 0): "a", (0, 2): "b", (3, 1): "c", (5, 0): "d"})


class TestSparseGrid:

    def test_point_queries(self, grid):
        assert grid.get(0, 2) == "b"
        assert grid.get(1, 1) is None
        assert (3, 1) in grid
        assert len(grid) == 4

    def test_upsert_rejects_blank_and_negative(self, grid):
        with pytest.raises(InvalidArgumentError):
            grid.upsert(0, 0, "")
        with pytest.raises(InvalidArgumentError):
            grid.upsert(-1, 0, "x")
        assert grid.get(0, 0) == "a"

    def test_remove_missing_is_noop(self, grid):
        grid.remove(9, 9)
        assert len(grid) == 4

    def test_slices(self, grid):
        assert grid.row_slice(0) == [(0, "a"), (2, "b")]
        assert grid.column_slice(0) == [(0, "a"), (5, "d")]

    def test_range_selections(self, grid):
        assert [(c.row, c.column) for c in grid.rows_above(3)] == [(5, 0)]
        assert [(c.row, c.column) for c in grid.rows_from(3)] == [(3, 1), (5, 0)]
        assert [(c.row, c.column) for c in grid.columns_from(1)] == [(0, 2), (3, 1)]
        assert [(c.row, c.column) for c in grid.columns_above(1)] == [(0, 2)]

    def test_max_indexes(self, grid):
        assert grid.max_row_index() == 5
        assert grid.max_column_index() == 2
        assert SparseGrid().max_row_index() is None
        assert SparseGrid().max_column_index() is None

    def test_cells_are_ordered_by_row_then_column(self, grid):
        assert [c.address for c in grid.cells()] == ["A1", "C1", "B4", "A6"]


class TestGridStore:

    def test_batch_commits_on_success(self):
        store = GridStore("s1")
        with store.batch() as staged:
            staged.upsert(0, 0, "x")
            assert store.get(0, 0) is None
        assert store.get(0, 0) == "x"

    def test_batch_rolls_back_on_error(self):
        store = GridStore("s1", {(0, 0): "keep"})
        with pytest.raises(RuntimeError):
            with store.batch() as staged:
                staged.remove(0, 0)
                staged.upsert(1, 1, "new")
                raise RuntimeError("boom")
        assert store.to_dict() == {(0, 0): "keep"}

    def test_nested_batch_joins_outer(self):
        store = GridStore("s1")
        with store.batch() as outer:
            outer.upsert(0, 0, "a")
            with store.batch() as inner:
                assert inner is outer
                inner.upsert(0, 1, "b")
            assert store.get(0, 1) is None
        assert store.to_dict() == {(0, 0): "a", (0, 1): "b"}

    def test_direct_writes(self):
        store = GridStore("s1")
        store.upsert(2, 2, "v")
        store.remove(2, 2)
        store.upsert(1, 1, "w")
        assert store.to_dict() == {(1, 1): "w"}
        store.clear()
        assert len(store) == 0

    def test_concurrent_batches_serialize(self):
        store = GridStore("s1")

        def append(tag):
            for _ in range(50):
                with store.batch() as grid:
                    max_row = grid.max_row_index()
                    grid.upsert(0 if max_row is None else max_row + 1, 0, tag)

        threads = [threading.Thread(target=append, args=(f"t{i}",)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(store.to_dict()) == [(row, 0) for row in range(200)]


class TestGridStoreRegistry:

    def test_for_sheet_returns_same_store(self):
        registry = GridStoreRegistry()
        assert registry.for_sheet("s1") is registry.for_sheet("s1")
        assert "s1" in registry

    def test_drop_reports_cell_count(self):
        registry = GridStoreRegistry()
        registry.for_sheet("s1").upsert(0, 0, "x")
        assert registry.drop("s1") == 1
        assert "s1" not in registry
        assert registry.drop("s1") == 0

    def test_dropped_sheet_is_not_recreated(self):
        registry = GridStoreRegistry()
        registry.for_sheet("s1").upsert(0, 0, "x")
        registry.drop("s1")
        with pytest.raises(NotFoundError):
            registry.for_sheet("s1")
        assert "s1" not in registry
