"""Custom exceptions for sheetstore."""

from typing import Optional


class SheetStoreError(Exception):
    """Base exception for all sheetstore errors."""

    pass


class NotFoundError(SheetStoreError):
    """Raised when a spreadsheet, sheet, media or user reference does not resolve."""

    def __init__(self, resource: str, identifier: object, message: Optional[str] = None) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(message or f"{resource} not found: {identifier}")


class UnauthorizedError(SheetStoreError):
    """Raised when the permission gate rejects a caller."""

    pass


class InvalidArgumentError(SheetStoreError):
    """Raised for arguments that can never succeed (negative index, grant to owner)."""

    pass


class InvalidStateError(SheetStoreError):
    """Raised when an operation would break a spreadsheet invariant."""

    pass


class ArchiveFormatError(SheetStoreError):
    """Raised when an archive, workbook or delimited file cannot be decoded."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        self.path = path
        super().__init__(f"{message} ({path})" if path else message)


class StorageIOError(SheetStoreError):
    """Raised when the backing byte storage is unavailable."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Storage failure for {key}: {reason}")
