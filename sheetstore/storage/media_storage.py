"""
Directory-backed byte storage for media attachments.
Keys are generated names; the original filename lives only in Media metadata.
"""

import os
import shutil
import uuid
from pathlib import Path
from typing import Union

from ..config.logging_config import LoggerMixin
from ..exceptions import StorageIOError


class MediaStorage(LoggerMixin):

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    @staticmethod
    def generate_key(filename: str) -> str:
        """Fresh unique key keeping the original extension."""
        extension = ""
        last_dot = filename.rfind(".")
        if last_dot > 0:
            extension = filename[last_dot:]
        return uuid.uuid4().hex + extension

    def path_for(self, key: str) -> Path:
        if not key or os.sep in key or (os.altsep and os.altsep in key) or key in (".", ".."):
            raise StorageIOError(key, "invalid storage key")
        return self.root / key

    def save(self, data: bytes, filename: str) -> str:
        key = self.generate_key(filename)
        path = self.path_for(key)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageIOError(key, str(e)) from e
        self.logger.debug("Stored media bytes", key=key, size=len(data))
        return key

    def save_file(self, source: Path, filename: str) -> str:
        """Copy an existing file into storage under a fresh key."""
        key = self.generate_key(filename)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, self.path_for(key))
        except OSError as e:
            raise StorageIOError(key, str(e)) from e
        return key

    def read(self, key: str) -> bytes:
        try:
            return self.path_for(key).read_bytes()
        except OSError as e:
            raise StorageIOError(key, str(e)) from e

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def delete(self, key: str) -> bool:
        """Delete stored bytes. Returns False when nothing was stored under key."""
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageIOError(key, str(e)) from e
        return True

    def delete_quietly(self, key: str) -> None:
        """Best-effort delete for cascading cleanup; failures are only logged."""
        try:
            self.delete(key)
        except StorageIOError as e:
            self.logger.warning("Failed to delete media file", key=key, error=e.reason)
