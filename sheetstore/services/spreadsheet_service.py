"""
Spreadsheet and sheet lifecycle: creation, listing, renaming, cascading
deletion and permission management.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from ..config.logging_config import LoggerMixin
from ..config.settings import Settings, get_settings
from ..exceptions import InvalidArgumentError
from ..models.cell_model import is_blank
from ..models.spreadsheet_model import Media, Sheet, SheetView, Spreadsheet, SpreadsheetSummary
from ..models.user_model import Permission, PermissionType, User
from ..storage.grid_store import GridStoreRegistry
from ..storage.media_storage import MediaStorage
from ..storage.repository import SpreadsheetRepository
from .permission_gate import PermissionGate

CellTriple = Tuple[int, int, str]


class SpreadsheetService(LoggerMixin):

    def __init__(self, repository: SpreadsheetRepository, grids: GridStoreRegistry,
                 gate: PermissionGate, media_storage: MediaStorage,
                 settings: Optional[Settings] = None):
        self.repository = repository
        self.grids = grids
        self.gate = gate
        self.media_storage = media_storage
        self.settings = settings or get_settings()

    # Users

    def register_user(self, username: str, email: Optional[str] = None) -> User:
        user = self.repository.add_user(User(username=username, email=email))
        self.logger.info("User registered", username=username)
        return user

    # Spreadsheets

    def new_sheet(self, spreadsheet: Spreadsheet, name: str, order_index: int) -> Sheet:
        """Build (not persist) a sheet carrying the configured dimension hints."""
        return Sheet(
            name=name,
            spreadsheet_id=spreadsheet.id,
            order_index=order_index,
            row_count=self.settings.SHEET_DEFAULT_ROW_COUNT,
            column_count=self.settings.SHEET_DEFAULT_COLUMN_COUNT,
        )

    def create_spreadsheet(self, name: str, description: Optional[str], username: str) -> SpreadsheetSummary:
        """Create a spreadsheet with its single default sheet at order 0."""
        owner = self.repository.get_user_by_username(username)
        spreadsheet = Spreadsheet(name=name, description=description, owner_id=owner.user_id)
        spreadsheet.sheets.append(self.new_sheet(spreadsheet, self.settings.DEFAULT_SHEET_NAME, 0))
        self.repository.add_spreadsheet(spreadsheet)
        self.logger.info("Spreadsheet created", spreadsheet_id=spreadsheet.id, owner=username)
        return self.summarize(spreadsheet, owner)

    def create_imported(self, owner: User, name: str, description: Optional[str],
                        sheets: Sequence[Tuple[str, Sequence[CellTriple]]],
                        media_files: Sequence[Media] = ()) -> Spreadsheet:
        """
        Create a spreadsheet from decoded content: sheets in the given order,
        each with its (row, col, value) cells. Empty values are skipped.
        Without any sheet the default sheet is created.
        """
        spreadsheet = Spreadsheet(name=name, description=description, owner_id=owner.user_id)
        if not sheets:
            sheets = [(self.settings.DEFAULT_SHEET_NAME, [])]

        contents: Dict[str, Sequence[CellTriple]] = {}
        for order, (sheet_name, cells) in enumerate(sheets):
            sheet = self.new_sheet(spreadsheet, sheet_name, order)
            if cells:
                sheet.extend_dimensions(
                    max(row for row, _, _ in cells) + 1,
                    max(col for _, col, _ in cells) + 1,
                )
                contents[sheet.id] = cells
            spreadsheet.sheets.append(sheet)

        for media in media_files:
            media.spreadsheet_id = spreadsheet.id
            spreadsheet.media_files.append(media)

        try:
            with self.repository.transaction():
                self.repository.add_spreadsheet(spreadsheet)
                for sheet_id, cells in contents.items():
                    with self.grids.for_sheet(sheet_id).batch() as grid:
                        for row, col, value in cells:
                            if not is_blank(value):
                                grid.upsert(row, col, value)
        except Exception:
            for sheet in spreadsheet.sheets:
                self.grids.drop(sheet.id)
            raise

        self.logger.info("Spreadsheet created from import", spreadsheet_id=spreadsheet.id,
                         owner=owner.username, sheets=len(spreadsheet.sheets))
        return spreadsheet

    def get_spreadsheet(self, spreadsheet_id: str, username: str) -> SpreadsheetSummary:
        spreadsheet = self.repository.get_spreadsheet(spreadsheet_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize(spreadsheet, user, PermissionType.VIEW)
        return self.summarize(spreadsheet, user)

    def list_spreadsheets(self, username: str) -> List[SpreadsheetSummary]:
        """Owned spreadsheets plus those shared with the user, each listed once."""
        user = self.repository.get_user_by_username(username)
        found: Dict[str, Spreadsheet] = {}
        for spreadsheet in self.repository.spreadsheets_owned_by(user.user_id):
            found[spreadsheet.id] = spreadsheet
        for grant in self.repository.permissions_for_user(user.user_id):
            if grant.spreadsheet_id not in found:
                found[grant.spreadsheet_id] = self.repository.get_spreadsheet(grant.spreadsheet_id)
        ordered = sorted(found.values(), key=lambda s: s.created_at)
        return [self.summarize(spreadsheet, user) for spreadsheet in ordered]

    def update_spreadsheet(self, spreadsheet_id: str, username: str,
                           name: Optional[str] = None,
                           description: Optional[str] = None) -> SpreadsheetSummary:
        spreadsheet = self.repository.get_spreadsheet(spreadsheet_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize(spreadsheet, user, PermissionType.EDIT)
        if name is not None and not name.strip():
            raise InvalidArgumentError("Spreadsheet name must not be blank")
        changes = {}
        if name is not None:
            changes["name"] = name
        if description is not None:
            changes["description"] = description
        self.repository.update_spreadsheet(spreadsheet, **changes)
        return self.summarize(spreadsheet, user)

    def delete_spreadsheet(self, spreadsheet_id: str, username: str) -> None:
        """
        Owner-only. Removes sheets, cells, media records and grants in one
        transaction, then deletes the media bytes best-effort.
        """
        spreadsheet = self.repository.get_spreadsheet(spreadsheet_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize_owner(spreadsheet, user, "delete spreadsheet")

        with self.repository.transaction():
            removed = self.repository.delete_spreadsheet(spreadsheet_id)
        for sheet in removed.sheets:
            self.grids.drop(sheet.id)
        for media in removed.media_files:
            self.media_storage.delete_quietly(media.storage_key)

        self.logger.info("Spreadsheet deleted", spreadsheet_id=spreadsheet_id,
                         sheets=len(removed.sheets), media=len(removed.media_files))

    # Sheets

    def create_sheet(self, spreadsheet_id: str, name: str, username: str) -> SheetView:
        """Append a sheet after the existing ones."""
        if not name or not name.strip():
            raise InvalidArgumentError("Sheet name must not be blank")
        spreadsheet = self.repository.get_spreadsheet(spreadsheet_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize(spreadsheet, user, PermissionType.EDIT)
        with self.repository.transaction():
            sheet = self.new_sheet(spreadsheet, name, len(spreadsheet.sheets))
            self.repository.add_sheet(spreadsheet, sheet)
        return SheetView.build(sheet, [])

    def get_sheet(self, sheet_id: str, username: str) -> SheetView:
        spreadsheet, sheet = self.repository.get_sheet(sheet_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize(spreadsheet, user, PermissionType.VIEW)
        return SheetView.build(sheet, self.grids.for_sheet(sheet.id).cells())

    def rename_sheet(self, sheet_id: str, name: str, username: str) -> SheetView:
        if not name or not name.strip():
            raise InvalidArgumentError("Sheet name must not be blank")
        spreadsheet, sheet = self.repository.get_sheet(sheet_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize(spreadsheet, user, PermissionType.EDIT)
        self.repository.rename_sheet(spreadsheet, sheet, name)
        return SheetView.build(sheet, self.grids.for_sheet(sheet.id).cells())

    # Permissions

    def grant_permission(self, spreadsheet_id: str, username: str, target_username: str,
                         permission_type: PermissionType) -> Permission:
        """Owner or ADMIN grantee grants; an existing grant is replaced."""
        spreadsheet = self.repository.get_spreadsheet(spreadsheet_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize_grant(spreadsheet, user)

        target = self.repository.get_user_by_username(target_username)
        if target.user_id == spreadsheet.owner_id:
            raise InvalidArgumentError("Cannot change owner permissions")

        permission = self.repository.save_permission(Permission(
            spreadsheet_id=spreadsheet.id,
            user_id=target.user_id,
            permission_type=PermissionType(permission_type),
        ))
        self.logger.info("Permission granted", spreadsheet_id=spreadsheet_id,
                         target=target_username, level=permission.permission_type.value)
        return permission

    def revoke_permission(self, spreadsheet_id: str, username: str, target_username: str) -> bool:
        """Owner-only. Revoking a grant that does not exist is a no-op."""
        spreadsheet = self.repository.get_spreadsheet(spreadsheet_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize_revoke(spreadsheet, user)

        target = self.repository.get_user_by_username(target_username)
        revoked = self.repository.delete_permission(spreadsheet.id, target.user_id)
        if revoked:
            self.logger.info("Permission revoked", spreadsheet_id=spreadsheet_id, target=target_username)
        return revoked

    def list_permissions(self, spreadsheet_id: str, username: str) -> List[Dict[str, str]]:
        spreadsheet = self.repository.get_spreadsheet(spreadsheet_id)
        user = self.repository.get_user_by_username(username)
        self.gate.authorize(spreadsheet, user, PermissionType.VIEW)
        return [
            {
                "username": self.repository.get_user(grant.user_id).username,
                "permission_type": grant.permission_type.value,
            }
            for grant in self.repository.permissions_for_spreadsheet(spreadsheet.id)
        ]

    def summarize(self, spreadsheet: Spreadsheet, user: User) -> SpreadsheetSummary:
        owner = self.repository.get_user(spreadsheet.owner_id)
        return SpreadsheetSummary(
            id=spreadsheet.id,
            name=spreadsheet.name,
            description=spreadsheet.description,
            owner_username=owner.username,
            user_permission=self.gate.effective_level(spreadsheet, user),
            media_count=len(spreadsheet.media_files),
            sheets=[sheet.summary() for sheet in spreadsheet.ordered_sheets()],
            created_at=spreadsheet.created_at,
            updated_at=spreadsheet.updated_at,
        )
