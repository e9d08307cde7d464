import pytest

from sheetstore.exceptions import UnauthorizedError
from sheetstore.models.user_model import Permission, PermissionType
from sheetstore.services.permission_gate import check_access


def _grant(level):
    return Permission(spreadsheet_id="s1", user_id="u2", permission_type=level)


class TestCheckAccess:

    @pytest.mark.parametrize("required", list(PermissionType))
    def test_owner_passes_every_level(self, required):
        check_access("u1", "u1", None, required)

    @pytest.mark.parametrize("required", list(PermissionType))
    def test_no_grant_is_rejected(self, required):
        with pytest.raises(UnauthorizedError, match="No permission to access"):
            check_access("u1", "u2", None, required)

    @pytest.mark.parametrize("level,required,allowed", [
        (PermissionType.VIEW, PermissionType.VIEW, True),
        (PermissionType.VIEW, PermissionType.EDIT, False),
        (PermissionType.VIEW, PermissionType.ADMIN, False),
        (PermissionType.EDIT, PermissionType.VIEW, True),
        (PermissionType.EDIT, PermissionType.EDIT, True),
        (PermissionType.EDIT, PermissionType.ADMIN, False),
        (PermissionType.ADMIN, PermissionType.VIEW, True),
        (PermissionType.ADMIN, PermissionType.EDIT, True),
        (PermissionType.ADMIN, PermissionType.ADMIN, True),
    ])
    def test_grant_levels(self, level, required, allowed):
        if allowed:
            check_access("u1", "u2", _grant(level), required)
        else:
            with pytest.raises(UnauthorizedError):
                check_access("u1", "u2", _grant(level), required)

    def test_edit_denial_message(self):
        with pytest.raises(UnauthorizedError, match="No edit permission"):
            check_access("u1", "u2", _grant(PermissionType.VIEW), PermissionType.EDIT)


class TestPermissionGate:

    def test_effective_level(self, services, spreadsheet, alice, bob, carol, grant):
        stored = services.repository.get_spreadsheet(spreadsheet.id)
        grant("bob", "EDIT")
        assert services.gate.effective_level(stored, alice) == "OWNER"
        assert services.gate.effective_level(stored, bob) == "EDIT"
        assert services.gate.effective_level(stored, carol) is None

    def test_admin_grantee_may_grant_but_not_revoke(self, services, spreadsheet, bob, carol, grant):
        grant("bob", "ADMIN")
        services.spreadsheets.grant_permission(spreadsheet.id, "bob", "carol", PermissionType.VIEW)
        with pytest.raises(UnauthorizedError, match="Only owner can revoke"):
            services.spreadsheets.revoke_permission(spreadsheet.id, "bob", "carol")

    def test_edit_grantee_may_not_grant(self, services, spreadsheet, bob, carol, grant):
        grant("bob", "EDIT")
        with pytest.raises(UnauthorizedError):
            services.spreadsheets.grant_permission(spreadsheet.id, "bob", "carol", PermissionType.VIEW)
