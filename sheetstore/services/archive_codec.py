"""
Zip archive export/import of a whole spreadsheet.

Layout:
    metadata.json          name, description, sheets [{name, filename}],
                           mediaFiles [{filename, contentType, size}]
    sheets/<name>.csv      one per sheet, rows 0..max row, blank fields for
                           absent cells
    media/<filename>       raw attachment bytes

Import parses and validates everything in a scratch directory before the new
spreadsheet is created, so a bad archive leaves nothing behind.
"""

import csv
import io
import re
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config.logging_config import LoggerMixin, PerformanceLogger
from ..config.settings import Settings, get_settings
from ..exceptions import ArchiveFormatError, InvalidArgumentError, StorageIOError
from ..models.spreadsheet_model import Media, SpreadsheetSummary
from ..models.user_model import PermissionType
from ..storage.grid_store import GridStoreRegistry, SparseGrid
from ..storage.media_storage import MediaStorage
from ..storage.repository import SpreadsheetRepository
from .permission_gate import PermissionGate
from .spreadsheet_service import SpreadsheetService

METADATA_PATH = "metadata.json"
SHEETS_DIR = "sheets"
MEDIA_DIR = "media"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


class SheetEntry(BaseModel):
    name: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)


class MediaEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filename: str = Field(..., min_length=1)
    content_type: Optional[str] = Field(default=None, alias="contentType")
    size: Optional[int] = None


class ArchiveMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    sheets: List[SheetEntry] = Field(default_factory=list)
    media_files: List[MediaEntry] = Field(default_factory=list, alias="mediaFiles")


def sanitize_filename(name: str) -> str:
    """Replace every character outside [A-Za-z0-9.-] with an underscore."""
    return _UNSAFE_FILENAME_CHARS.sub("_", name)


def sheet_to_csv(grid: SparseGrid) -> str:
    """Render a sheet as rows 0..max row, each max column + 1 fields wide."""
    max_row = grid.max_row_index()
    if max_row is None:
        return ""
    width = grid.max_column_index() + 1
    values = grid.to_dict()

    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    # QUOTE_MINIMAL only quotes characters of the line terminator, not a bare \r
    quoted = csv.writer(output, lineterminator="\n", quoting=csv.QUOTE_ALL)
    for row in range(max_row + 1):
        fields = [values.get((row, col), "") for col in range(width)]
        if any("\r" in field for field in fields):
            quoted.writerow(fields)
        else:
            writer.writerow(fields)
    return output.getvalue()


def csv_to_rows(text: str, path: Optional[str] = None) -> List[List[str]]:
    try:
        return list(csv.reader(io.StringIO(text, newline=""), strict=True))
    except csv.Error as e:
        raise ArchiveFormatError(f"Malformed CSV: {e}", path) from e


def _inside(base: Path, relative: str) -> Path:
    """Resolve relative under base, refusing anything that escapes it."""
    target = (base / relative).resolve()
    root = base.resolve()
    if target != root and root not in target.parents:
        raise ArchiveFormatError("Archive entry escapes the archive root", relative)
    return target


class ArchiveCodec(LoggerMixin):

    def __init__(self, repository: SpreadsheetRepository, grids: GridStoreRegistry,
                 gate: PermissionGate, media_storage: MediaStorage,
                 spreadsheets: SpreadsheetService, settings: Optional[Settings] = None):
        self.repository = repository
        self.grids = grids
        self.gate = gate
        self.media_storage = media_storage
        self.spreadsheets = spreadsheets
        self.settings = settings or get_settings()

    # Export

    def export_spreadsheet(self, spreadsheet_id: str, username: str) -> bytes:
        spreadsheet = self.repository.get_spreadsheet(spreadsheet_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize(spreadsheet, user, PermissionType.VIEW)

        with PerformanceLogger("archive export", self.logger, spreadsheet_id=spreadsheet_id):
            metadata = ArchiveMetadata(name=spreadsheet.name, description=spreadsheet.description)
            buffer = io.BytesIO()
            with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
                for sheet in spreadsheet.ordered_sheets():
                    filename = sanitize_filename(sheet.name) + ".csv"
                    metadata.sheets.append(SheetEntry(name=sheet.name, filename=filename))
                    archive.writestr(f"{SHEETS_DIR}/{filename}", sheet_to_csv(self.grids.for_sheet(sheet.id)))

                for media in spreadsheet.media_files:
                    metadata.media_files.append(MediaEntry(
                        filename=media.filename,
                        content_type=media.content_type,
                        size=media.file_size,
                    ))

                archive.writestr(METADATA_PATH, metadata.model_dump_json(by_alias=True, indent=2))

                written = set()
                for media in spreadsheet.media_files:
                    if media.filename in written:
                        self.logger.warning("Duplicate media filename, only the first is exported",
                                            media_id=media.id, filename=media.filename)
                        continue
                    try:
                        data = self.media_storage.read(media.storage_key)
                    except StorageIOError as e:
                        self.logger.warning("Media bytes missing from storage, not exported",
                                            media_id=media.id, error=e.reason)
                        continue
                    archive.writestr(f"{MEDIA_DIR}/{media.filename}", data)
                    written.add(media.filename)

        return buffer.getvalue()

    # Import

    def import_spreadsheet(self, data: bytes, username: str) -> SpreadsheetSummary:
        owner = self.repository.get_user_by_username(username)
        if len(data) > self.settings.MAX_ARCHIVE_SIZE:
            raise InvalidArgumentError(
                f"Archive exceeds maximum size of {self.settings.MAX_ARCHIVE_SIZE} bytes")

        with PerformanceLogger("archive import", self.logger, owner=username):
            with tempfile.TemporaryDirectory(prefix="spreadsheet-import-") as scratch:
                root = Path(scratch)
                self._extract(data, root)
                metadata = self._read_metadata(root)
                sheet_rows = self._read_sheets(root, metadata)
                stored_media = self._store_media(root, metadata)

            sheets = [
                (entry.name, [
                    (row, col, value)
                    for row, fields in enumerate(rows or [])
                    for col, value in enumerate(fields)
                    if value
                ])
                for entry, rows in zip(metadata.sheets, sheet_rows)
            ]
            try:
                spreadsheet = self.spreadsheets.create_imported(
                    owner, metadata.name, metadata.description, sheets, stored_media)
            except Exception:
                for media in stored_media:
                    self.media_storage.delete_quietly(media.storage_key)
                raise

        self.logger.info("Spreadsheet imported", spreadsheet_id=spreadsheet.id,
                         sheets=len(spreadsheet.sheets), media=len(spreadsheet.media_files))
        return self.spreadsheets.summarize(spreadsheet, owner)

    def _extract(self, data: bytes, root: Path) -> None:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                entries = archive.infolist()
                if sum(entry.file_size for entry in entries) > self.settings.MAX_ARCHIVE_SIZE:
                    raise ArchiveFormatError("Archive expands beyond the maximum size")
                for entry in entries:
                    name = entry.filename.replace("\\", "/")
                    target = _inside(root, name)
                    if entry.is_dir():
                        target.mkdir(parents=True, exist_ok=True)
                        continue
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with archive.open(entry) as source, open(target, "wb") as sink:
                        shutil.copyfileobj(source, sink)
        except zipfile.BadZipFile as e:
            raise ArchiveFormatError(f"Not a zip archive: {e}") from e

    def _read_metadata(self, root: Path) -> ArchiveMetadata:
        path = root / METADATA_PATH
        if not path.is_file():
            raise ArchiveFormatError("Invalid archive: metadata.json not found")
        try:
            return ArchiveMetadata.model_validate_json(path.read_bytes())
        except ValidationError as e:
            raise ArchiveFormatError(f"Invalid metadata.json: {e}") from e

    def _read_sheets(self, root: Path, metadata: ArchiveMetadata) -> List[Optional[List[List[str]]]]:
        """Parsed rows per metadata sheet, None where the CSV file is missing."""
        sheets_dir = root / SHEETS_DIR
        parsed = []
        for entry in metadata.sheets:
            path = _inside(sheets_dir, entry.filename)
            if not path.is_file():
                self.logger.warning("CSV file not found, sheet imported empty",
                                    sheet=entry.name, filename=entry.filename)
                parsed.append(None)
                continue
            try:
                text = path.read_bytes().decode("utf-8-sig")
            except UnicodeDecodeError as e:
                raise ArchiveFormatError("CSV is not valid UTF-8", entry.filename) from e
            parsed.append(csv_to_rows(text, entry.filename))
        return parsed

    def _store_media(self, root: Path, metadata: ArchiveMetadata) -> List[Media]:
        """Copy present media into storage under fresh keys (spreadsheet id filled in later)."""
        media_dir = root / MEDIA_DIR
        stored: List[Media] = []
        seen = set()
        try:
            for entry in metadata.media_files:
                if entry.filename in seen:
                    self.logger.warning("Media filename listed twice, both records share one file",
                                        filename=entry.filename)
                seen.add(entry.filename)
                source = _inside(media_dir, entry.filename)
                if not source.is_file():
                    self.logger.warning("Media file missing from archive", filename=entry.filename)
                    continue
                key = self.media_storage.save_file(source, entry.filename)
                stored.append(Media(
                    spreadsheet_id="",
                    filename=entry.filename,
                    content_type=entry.content_type,
                    file_size=entry.size if entry.size is not None else source.stat().st_size,
                    storage_key=key,
                ))
        except Exception:
            for media in stored:
                self.media_storage.delete_quietly(media.storage_key)
            raise
        return stored
