"""
Authorization decisions for spreadsheet access.

The owner passes every check. Anyone else needs a grant: VIEW accepts any
grant, EDIT accepts EDIT or ADMIN, ADMIN accepts only ADMIN.
"""

from typing import Optional

from ..exceptions import UnauthorizedError
from ..models.spreadsheet_model import Spreadsheet
from ..models.user_model import Permission, PermissionType, User
from ..storage.repository import SpreadsheetRepository

_DENIED_MESSAGES = {
    PermissionType.VIEW: "No permission to access this spreadsheet",
    PermissionType.EDIT: "No edit permission for this spreadsheet",
    PermissionType.ADMIN: "Admin permission required",
}


def check_access(owner_id: str, user_id: str, grant: Optional[Permission],
                 required: PermissionType) -> None:
    """Raise UnauthorizedError unless user_id may act at the required level."""
    if owner_id == user_id:
        return
    if grant is None:
        raise UnauthorizedError(_DENIED_MESSAGES[PermissionType.VIEW])
    if not grant.allows(required):
        raise UnauthorizedError(_DENIED_MESSAGES[required])


class PermissionGate:

    def __init__(self, repository: SpreadsheetRepository):
        self.repository = repository

    def authorize(self, spreadsheet: Spreadsheet, user: User, required: PermissionType) -> None:
        grant = None
        if spreadsheet.owner_id != user.user_id:
            grant = self.repository.find_permission(spreadsheet.id, user.user_id)
        check_access(spreadsheet.owner_id, user.user_id, grant, required)

    def effective_level(self, spreadsheet: Spreadsheet, user: User) -> Optional[str]:
        """OWNER, the granted level name, or None without access."""
        if spreadsheet.owner_id == user.user_id:
            return "OWNER"
        grant = self.repository.find_permission(spreadsheet.id, user.user_id)
        return grant.permission_type.value if grant else None

    def authorize_grant(self, spreadsheet: Spreadsheet, user: User) -> None:
        """Owners and ADMIN grantees may grant."""
        self.authorize(spreadsheet, user, PermissionType.ADMIN)

    def authorize_revoke(self, spreadsheet: Spreadsheet, user: User) -> None:
        if spreadsheet.owner_id != user.user_id:
            raise UnauthorizedError("Only owner can revoke permissions")

    def authorize_owner(self, spreadsheet: Spreadsheet, user: User, action: str) -> None:
        if spreadsheet.owner_id != user.user_id:
            raise UnauthorizedError(f"Only owner can {action}")
