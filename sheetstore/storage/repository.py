"""
Keyed in-memory store for users, spreadsheets (with their sheets and media)
and permission grants.

transaction() makes a multi-step change all-or-nothing. While it is open,
every write records how to undo itself: index entries remember their previous
value, and a spreadsheet remembers its own fields and those of its sheets the
first time it is touched. If the block raises, the undo journal is replayed in
reverse on the same objects, so references held elsewhere stay live.
"""

import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from ..config.logging_config import LoggerMixin
from ..exceptions import InvalidArgumentError, NotFoundError
from ..models.spreadsheet_model import Media, Sheet, Spreadsheet
from ..models.user_model import Permission, User

PermissionKey = Tuple[str, str]

_MISSING = object()


class SpreadsheetRepository(LoggerMixin):

    def __init__(self):
        self._lock = threading.RLock()
        self._users: Dict[str, User] = {}
        self._usernames: Dict[str, str] = {}
        self._spreadsheets: Dict[str, Spreadsheet] = {}
        self._permissions: Dict[PermissionKey, Permission] = {}
        self._sheet_index: Dict[str, str] = {}
        self._media_index: Dict[str, str] = {}
        self._journal: Optional[List[Callable[[], None]]] = None
        self._remembered: Set[str] = set()

    @contextmanager
    def transaction(self) -> Iterator['SpreadsheetRepository']:
        with self._lock:
            if self._journal is not None:
                # Nested transaction joins the outer one
                yield self
                return

            self._journal = []
            self._remembered = set()
            try:
                yield self
            except BaseException:
                self._rollback()
                raise
            finally:
                self._journal = None
                self._remembered = set()

    def _rollback(self) -> None:
        steps = len(self._journal)
        for undo in reversed(self._journal):
            undo()
        self.logger.debug("Transaction rolled back", steps=steps)

    def _put(self, mapping: Dict, key, value) -> None:
        self._record_entry(mapping, key)
        mapping[key] = value

    def _pop(self, mapping: Dict, key):
        self._record_entry(mapping, key)
        return mapping.pop(key, None)

    def _record_entry(self, mapping: Dict, key) -> None:
        if self._journal is None:
            return
        previous = mapping.get(key, _MISSING)
        if previous is _MISSING:
            self._journal.append(lambda: mapping.pop(key, None))
        else:
            self._journal.append(lambda: mapping.__setitem__(key, previous))

    def _remember(self, spreadsheet: Spreadsheet) -> None:
        """Record the spreadsheet's fields and its sheets' fields, once per transaction."""
        if self._journal is None or spreadsheet.id in self._remembered:
            return
        self._remembered.add(spreadsheet.id)
        saved = spreadsheet.field_state()
        saved_sheets = [(sheet, sheet.field_state()) for sheet in spreadsheet.sheets]

        def undo():
            for sheet, state in saved_sheets:
                sheet.restore_fields(state)
            spreadsheet.restore_fields(saved)

        self._journal.append(undo)

    # Users

    def add_user(self, user: User) -> User:
        with self._lock:
            if user.username in self._usernames:
                raise InvalidArgumentError(f"Username already taken: {user.username}")
            self._put(self._users, user.user_id, user)
            self._put(self._usernames, user.username, user.user_id)
            return user

    def find_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            user_id = self._usernames.get(username)
            return self._users.get(user_id) if user_id else None

    def get_user_by_username(self, username: str) -> User:
        user = self.find_user_by_username(username)
        if user is None:
            raise NotFoundError("User", username)
        return user

    def get_user(self, user_id: str) -> User:
        with self._lock:
            user = self._users.get(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    # Spreadsheets

    def add_spreadsheet(self, spreadsheet: Spreadsheet) -> Spreadsheet:
        with self._lock:
            self._put(self._spreadsheets, spreadsheet.id, spreadsheet)
            self._reindex(spreadsheet)
            return spreadsheet

    def save_spreadsheet(self, spreadsheet: Spreadsheet) -> Spreadsheet:
        with self._lock:
            if spreadsheet.id not in self._spreadsheets:
                raise NotFoundError("Spreadsheet", spreadsheet.id)
            self._remember(spreadsheet)
            spreadsheet.sheets.sort(key=lambda sheet: sheet.order_index)
            self._put(self._spreadsheets, spreadsheet.id, spreadsheet)
            self._reindex(spreadsheet)
            return spreadsheet

    def update_spreadsheet(self, spreadsheet: Spreadsheet, **fields) -> Spreadsheet:
        """Assign the given metadata fields on a stored spreadsheet."""
        with self._lock:
            if spreadsheet.id not in self._spreadsheets:
                raise NotFoundError("Spreadsheet", spreadsheet.id)
            self._remember(spreadsheet)
            for name, value in fields.items():
                setattr(spreadsheet, name, value)
            spreadsheet.touch()
            return spreadsheet

    def get_spreadsheet(self, spreadsheet_id: str) -> Spreadsheet:
        with self._lock:
            spreadsheet = self._spreadsheets.get(spreadsheet_id)
        if spreadsheet is None:
            raise NotFoundError("Spreadsheet", spreadsheet_id)
        return spreadsheet

    def spreadsheets_owned_by(self, user_id: str) -> List[Spreadsheet]:
        with self._lock:
            return [s for s in self._spreadsheets.values() if s.owner_id == user_id]

    def delete_spreadsheet(self, spreadsheet_id: str) -> Spreadsheet:
        """Remove a spreadsheet with its sheets, media records and grants."""
        with self._lock:
            spreadsheet = self._pop(self._spreadsheets, spreadsheet_id)
            if spreadsheet is None:
                raise NotFoundError("Spreadsheet", spreadsheet_id)
            for sheet in spreadsheet.sheets:
                self._pop(self._sheet_index, sheet.id)
            for media in spreadsheet.media_files:
                self._pop(self._media_index, media.id)
            for key in [k for k in self._permissions if k[0] == spreadsheet_id]:
                self._pop(self._permissions, key)
            return spreadsheet

    # Sheets

    def get_sheet(self, sheet_id: str) -> Tuple[Spreadsheet, Sheet]:
        with self._lock:
            spreadsheet_id = self._sheet_index.get(sheet_id)
            spreadsheet = self._spreadsheets.get(spreadsheet_id) if spreadsheet_id else None
            sheet = spreadsheet.find_sheet(sheet_id) if spreadsheet else None
        if sheet is None:
            raise NotFoundError("Sheet", sheet_id)
        return spreadsheet, sheet

    def add_sheet(self, spreadsheet: Spreadsheet, sheet: Sheet) -> Sheet:
        with self._lock:
            self._remember(spreadsheet)
            spreadsheet.sheets.append(sheet)
            spreadsheet.touch()
            self._put(self._sheet_index, sheet.id, spreadsheet.id)
            return sheet

    def rename_sheet(self, spreadsheet: Spreadsheet, sheet: Sheet, name: str) -> Sheet:
        with self._lock:
            self._remember(spreadsheet)
            sheet.name = name
            spreadsheet.touch()
            return sheet

    def remove_sheet(self, spreadsheet: Spreadsheet, sheet_id: str) -> None:
        with self._lock:
            self._remember(spreadsheet)
            spreadsheet.sheets = [s for s in spreadsheet.sheets if s.id != sheet_id]
            self._pop(self._sheet_index, sheet_id)

    # Media

    def add_media(self, spreadsheet: Spreadsheet, media: Media) -> Media:
        with self._lock:
            self._remember(spreadsheet)
            spreadsheet.media_files.append(media)
            spreadsheet.touch()
            self._put(self._media_index, media.id, spreadsheet.id)
            return media

    def get_media(self, media_id: str) -> Tuple[Spreadsheet, Media]:
        with self._lock:
            spreadsheet_id = self._media_index.get(media_id)
            spreadsheet = self._spreadsheets.get(spreadsheet_id) if spreadsheet_id else None
            media = spreadsheet.find_media(media_id) if spreadsheet else None
        if media is None:
            raise NotFoundError("Media", media_id)
        return spreadsheet, media

    def remove_media(self, spreadsheet: Spreadsheet, media_id: str) -> None:
        with self._lock:
            self._remember(spreadsheet)
            spreadsheet.media_files = [m for m in spreadsheet.media_files if m.id != media_id]
            self._pop(self._media_index, media_id)

    # Permissions

    def find_permission(self, spreadsheet_id: str, user_id: str) -> Optional[Permission]:
        with self._lock:
            return self._permissions.get((spreadsheet_id, user_id))

    def save_permission(self, permission: Permission) -> Permission:
        """Insert or replace the grant for (spreadsheet, user)."""
        with self._lock:
            self._put(self._permissions, permission.key, permission)
            return permission

    def delete_permission(self, spreadsheet_id: str, user_id: str) -> bool:
        with self._lock:
            if (spreadsheet_id, user_id) not in self._permissions:
                return False
            self._pop(self._permissions, (spreadsheet_id, user_id))
            return True

    def permissions_for_spreadsheet(self, spreadsheet_id: str) -> List[Permission]:
        with self._lock:
            return [p for k, p in self._permissions.items() if k[0] == spreadsheet_id]

    def permissions_for_user(self, user_id: str) -> List[Permission]:
        with self._lock:
            return [p for k, p in self._permissions.items() if k[1] == user_id]

    def _reindex(self, spreadsheet: Spreadsheet) -> None:
        for sheet in spreadsheet.sheets:
            self._put(self._sheet_index, sheet.id, spreadsheet.id)
        for media in spreadsheet.media_files:
            self._put(self._media_index, media.id, spreadsheet.id)
