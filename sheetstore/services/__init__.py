"""
Service layer: authorization, grid mutations, lifecycle, media and the
archive/workbook codecs.
"""

from .archive_codec import ArchiveCodec
from .container import ServiceContainer
from .grid_mutation import GridMutationEngine
from .media_service import MediaService
from .permission_gate import PermissionGate, check_access
from .spreadsheet_service import SpreadsheetService
from .workbook_codec import WorkbookCodec

__all__ = [
    "ArchiveCodec",
    "ServiceContainer",
    "GridMutationEngine",
    "MediaService",
    "PermissionGate",
    "check_access",
    "SpreadsheetService",
    "WorkbookCodec",
]
