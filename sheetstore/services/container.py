"""
Wiring of the storage backends and services that make up one sheetstore
instance.
"""

from typing import Optional

from ..config.settings import Settings, get_settings
from ..storage.grid_store import GridStoreRegistry
from ..storage.media_storage import MediaStorage
from ..storage.repository import SpreadsheetRepository
from .archive_codec import ArchiveCodec
from .grid_mutation import GridMutationEngine
from .media_service import MediaService
from .permission_gate import PermissionGate
from .spreadsheet_service import SpreadsheetService
from .workbook_codec import WorkbookCodec


class ServiceContainer:

    def __init__(self, settings: Optional[Settings] = None,
                 media_storage: Optional[MediaStorage] = None):
        self.settings = settings or get_settings()
        self.repository = SpreadsheetRepository()
        self.grids = GridStoreRegistry()
        self.media_storage = media_storage or MediaStorage(self.settings.MEDIA_UPLOAD_DIR)
        self.gate = PermissionGate(self.repository)

        self.spreadsheets = SpreadsheetService(
            self.repository, self.grids, self.gate, self.media_storage, self.settings)
        self.mutations = GridMutationEngine(self.repository, self.grids, self.gate)
        self.media = MediaService(self.repository, self.gate, self.media_storage, self.settings)
        self.archives = ArchiveCodec(
            self.repository, self.grids, self.gate, self.media_storage, self.spreadsheets, self.settings)
        self.workbooks = WorkbookCodec(
            self.repository, self.grids, self.gate, self.spreadsheets, self.settings)
