import io
import json
import zipfile

import pytest

from sheetstore.exceptions import ArchiveFormatError, InvalidArgumentError, UnauthorizedError
from sheetstore.models.cell_model import CellUpdate
from sheetstore.services.archive_codec import csv_to_rows, sanitize_filename, sheet_to_csv
from sheetstore.storage.grid_store import SparseGrid


def _zip(entries):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def _metadata(**overrides):
    metadata = {"name": "Imported", "description": None, "sheets": [], "mediaFiles": []}
    metadata.update(overrides)
    return json.dumps(metadata)


def _cells(services, sheet):
    return services.grids.for_sheet(sheet["id"]).to_dict()


class TestCsvHelpers:

    def test_sanitize_filename(self):
        assert sanitize_filename("Q1 report/v2.final") == "Q1_report_v2.final"
        assert sanitize_filename("A-B") == "A-B"

    def test_sheet_to_csv_keeps_row_alignment(self):
        grid = SparseGrid({(0, 0): "a", (2, 3): "b"})
        assert sheet_to_csv(grid) == "a,,,\n,,,\n,,,b\n"

    def test_sheet_to_csv_quotes_special_fields(self):
        grid = SparseGrid({(0, 0): 'say "hi"', (0, 1): "a,b", (0, 2): "two\nlines"})
        assert sheet_to_csv(grid) == '"say ""hi""","a,b","two\nlines"\n'

    def test_empty_sheet_is_empty_text(self):
        assert sheet_to_csv(SparseGrid()) == ""

    def test_csv_round_trip_of_quoted_fields(self):
        assert csv_to_rows('"say ""hi""","a,b","two\nlines"\n') == [['say "hi"', "a,b", "two\nlines"]]

    def test_carriage_return_stays_inside_its_cell(self):
        grid = SparseGrid({(0, 0): "a\rb", (0, 1): "c", (1, 0): "d"})
        text = sheet_to_csv(grid)
        assert text == '"a\rb","c"\nd,\n'
        assert csv_to_rows(text) == [["a\rb", "c"], ["d", ""]]

    def test_malformed_csv(self):
        with pytest.raises(ArchiveFormatError):
            csv_to_rows('"open quote,never closed', "sheets/x.csv")


class TestExport:

    def test_layout(self, services, spreadsheet, sheet_id):
        services.mutations.update_cells(
            sheet_id, [CellUpdate(row=0, col=0, value="a"), CellUpdate(row=2, col=3, value="b")], "alice")
        services.media.upload_media(spreadsheet.id, "logo.png", b"PNG", "image/png", "alice")

        data = services.archives.export_spreadsheet(spreadsheet.id, "alice")

        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            metadata = json.loads(archive.read("metadata.json"))
            assert metadata["name"] == "Budget"
            assert metadata["description"] == "Quarterly numbers"
            assert metadata["sheets"] == [{"name": "Sheet1", "filename": "Sheet1.csv"}]
            assert metadata["mediaFiles"] == [{"filename": "logo.png", "contentType": "image/png", "size": 3}]
            assert archive.read("sheets/Sheet1.csv").decode() == "a,,,\n,,,\n,,,b\n"
            assert archive.read("media/logo.png") == b"PNG"

    def test_requires_view(self, services, spreadsheet, bob):
        with pytest.raises(UnauthorizedError):
            services.archives.export_spreadsheet(spreadsheet.id, "bob")

    def test_missing_media_bytes_are_skipped(self, services, spreadsheet):
        media = services.media.upload_media(spreadsheet.id, "gone.txt", b"x", None, "alice")
        services.media_storage.delete(media.storage_key)
        data = services.archives.export_spreadsheet(spreadsheet.id, "alice")
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            assert "media/gone.txt" not in archive.namelist()

    def test_duplicate_media_filename_written_once(self, services, spreadsheet, caplog):
        services.media.upload_media(spreadsheet.id, "notes.txt", b"first", "text/plain", "alice")
        services.media.upload_media(spreadsheet.id, "notes.txt", b"second", "text/plain", "alice")

        data = services.archives.export_spreadsheet(spreadsheet.id, "alice")

        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            assert [n for n in archive.namelist() if n.startswith("media/")] == ["media/notes.txt"]
            assert archive.read("media/notes.txt") == b"first"
            assert len(json.loads(archive.read("metadata.json"))["mediaFiles"]) == 2
        assert "Duplicate media filename" in caplog.text


class TestRoundTrip:

    def test_cells_names_and_order_survive(self, services, spreadsheet, sheet_id, bob):
        services.mutations.update_cells(
            sheet_id, [CellUpdate(row=0, col=0, value="a"), CellUpdate(row=2, col=3, value="b")], "alice")
        second = services.spreadsheets.create_sheet(spreadsheet.id, "Notes, misc", "alice")
        services.mutations.update_cells(second.id, [CellUpdate(row=1, col=1, value='x,"y"')], "alice")
        services.media.upload_media(spreadsheet.id, "logo.png", b"PNG", "image/png", "alice")

        data = services.archives.export_spreadsheet(spreadsheet.id, "alice")
        imported = services.archives.import_spreadsheet(data, "bob")

        assert imported.id != spreadsheet.id
        assert imported.owner_username == "bob"
        assert imported.name == "Budget"
        assert imported.description == "Quarterly numbers"
        assert [s["name"] for s in imported.sheets] == ["Sheet1", "Notes, misc"]
        assert [s["order_index"] for s in imported.sheets] == [0, 1]
        assert _cells(services, imported.sheets[0]) == {(0, 0): "a", (2, 3): "b"}
        assert _cells(services, imported.sheets[1]) == {(1, 1): 'x,"y"'}

        media = services.media.list_media(imported.id, "bob")
        assert len(media) == 1
        assert media[0].filename == "logo.png"
        assert media[0].storage_key != "logo.png"
        assert services.media.download_media(media[0].id, "bob")[1] == b"PNG"


    def test_carriage_return_survives_export_and_import(self, services, spreadsheet, sheet_id, bob):
        services.mutations.update_cells(
            sheet_id, [CellUpdate(row=0, col=0, value="a\rb"), CellUpdate(row=0, col=1, value="c"),
                       CellUpdate(row=1, col=0, value="x\r\ny")], "alice")

        data = services.archives.export_spreadsheet(spreadsheet.id, "alice")
        imported = services.archives.import_spreadsheet(data, "bob")

        assert _cells(services, imported.sheets[0]) == {(0, 0): "a\rb", (0, 1): "c", (1, 0): "x\r\ny"}


class TestImport:

    def test_missing_metadata_is_fatal(self, services, alice):
        data = _zip({"sheets/Sheet1.csv": "a,b\n"})
        with pytest.raises(ArchiveFormatError, match="metadata.json"):
            services.archives.import_spreadsheet(data, "alice")
        assert services.spreadsheets.list_spreadsheets("alice") == []

    def test_missing_csv_gives_empty_sheet(self, services, alice):
        data = _zip({
            "metadata.json": _metadata(sheets=[
                {"name": "Present", "filename": "Present.csv"},
                {"name": "Absent", "filename": "Absent.csv"},
            ]),
            "sheets/Present.csv": "x,,y\n",
        })
        imported = services.archives.import_spreadsheet(data, "alice")
        assert [s["name"] for s in imported.sheets] == ["Present", "Absent"]
        assert _cells(services, imported.sheets[0]) == {(0, 0): "x", (0, 2): "y"}
        assert _cells(services, imported.sheets[1]) == {}

    def test_no_sheets_listed_gets_default_sheet(self, services, alice):
        imported = services.archives.import_spreadsheet(_zip({"metadata.json": _metadata()}), "alice")
        assert [s["name"] for s in imported.sheets] == ["Sheet1"]

    def test_rows_beyond_default_dimensions_extend_row_count(self, services, alice):
        rows = "\n" * 1200 + "last\n"
        data = _zip({
            "metadata.json": _metadata(sheets=[{"name": "Long", "filename": "Long.csv"}]),
            "sheets/Long.csv": rows,
        })
        imported = services.archives.import_spreadsheet(data, "alice")
        sheet = services.spreadsheets.get_sheet(imported.sheets[0]["id"], "alice")
        assert sheet.row_count == 1201
        assert [(c.row, c.value) for c in sheet.cells] == [(1200, "last")]

    def test_invalid_metadata(self, services, alice):
        with pytest.raises(ArchiveFormatError):
            services.archives.import_spreadsheet(_zip({"metadata.json": "{not json"}), "alice")

    def test_not_a_zip(self, services, alice):
        with pytest.raises(ArchiveFormatError):
            services.archives.import_spreadsheet(b"plain text", "alice")

    def test_entry_escaping_root_rejected(self, services, alice):
        data = _zip({"metadata.json": _metadata(), "../evil.txt": "x"})
        with pytest.raises(ArchiveFormatError, match="escapes"):
            services.archives.import_spreadsheet(data, "alice")

    def test_sheet_filename_escaping_root_rejected(self, services, alice):
        data = _zip({"metadata.json": _metadata(sheets=[{"name": "S", "filename": "../../etc/passwd"}])})
        with pytest.raises(ArchiveFormatError):
            services.archives.import_spreadsheet(data, "alice")

    def test_media_listed_but_absent_is_skipped(self, services, alice):
        data = _zip({
            "metadata.json": _metadata(mediaFiles=[
                {"filename": "here.txt", "contentType": "text/plain", "size": 4},
                {"filename": "missing.txt"},
            ]),
            "media/here.txt": "here",
        })
        imported = services.archives.import_spreadsheet(data, "alice")
        media = services.media.list_media(imported.id, "alice")
        assert [(m.filename, m.content_type, m.file_size) for m in media] == [("here.txt", "text/plain", 4)]

    def test_archive_size_limit(self, services, alice, settings):
        settings.MAX_ARCHIVE_SIZE = 10
        with pytest.raises(InvalidArgumentError):
            services.archives.import_spreadsheet(_zip({"metadata.json": _metadata()}), "alice")
