"""
Media attachments of a spreadsheet. Bytes live in MediaStorage under a
generated key; the repository keeps the metadata.
"""

from typing import List, Optional, Tuple

from ..config.logging_config import LoggerMixin
from ..config.settings import Settings, get_settings
from ..exceptions import InvalidArgumentError
from ..models.spreadsheet_model import Media
from ..models.user_model import PermissionType
from ..storage.media_storage import MediaStorage
from ..storage.repository import SpreadsheetRepository
from .permission_gate import PermissionGate


class MediaService(LoggerMixin):

    def __init__(self, repository: SpreadsheetRepository, gate: PermissionGate,
                 storage: MediaStorage, settings: Optional[Settings] = None):
        self.repository = repository
        self.gate = gate
        self.storage = storage
        self.settings = settings or get_settings()

    def upload_media(self, spreadsheet_id: str, filename: str, data: bytes,
                     content_type: Optional[str], username: str) -> Media:
        spreadsheet = self.repository.get_spreadsheet(spreadsheet_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize(spreadsheet, user, PermissionType.EDIT)

        if not filename:
            raise InvalidArgumentError("Media filename is required")
        if len(data) > self.settings.MAX_UPLOAD_SIZE:
            raise InvalidArgumentError(
                f"Media exceeds maximum upload size of {self.settings.MAX_UPLOAD_SIZE} bytes")

        # Bytes are written before taking the repository lock
        key = self.storage.save(data, filename)
        media = Media(
            spreadsheet_id=spreadsheet.id,
            filename=filename,
            content_type=content_type,
            file_size=len(data),
            storage_key=key,
        )
        try:
            with self.repository.transaction():
                self.repository.add_media(self.repository.get_spreadsheet(spreadsheet.id), media)
        except Exception:
            self.storage.delete_quietly(key)
            raise

        self.logger.info("Media uploaded", spreadsheet_id=spreadsheet_id,
                         media_id=media.id, size=media.file_size)
        return media

    def download_media(self, media_id: str, username: str) -> Tuple[Media, bytes]:
        spreadsheet, media = self.repository.get_media(media_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize(spreadsheet, user, PermissionType.VIEW)
        return media, self.storage.read(media.storage_key)

    def list_media(self, spreadsheet_id: str, username: str) -> List[Media]:
        spreadsheet = self.repository.get_spreadsheet(spreadsheet_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize(spreadsheet, user, PermissionType.VIEW)
        return list(spreadsheet.media_files)

    def delete_media(self, media_id: str, username: str) -> None:
        spreadsheet, media = self.repository.get_media(media_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize(spreadsheet, user, PermissionType.EDIT)

        self.storage.delete(media.storage_key)
        with self.repository.transaction():
            self.repository.remove_media(spreadsheet, media.id)
        self.logger.info("Media deleted", spreadsheet_id=spreadsheet.id, media_id=media_id)
