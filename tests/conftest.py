import pytest

from sheetstore.config.logging_config import configure_test_logging
from sheetstore.config.settings import Settings
from sheetstore.models.user_model import PermissionType
from sheetstore.services.container import ServiceContainer

configure_test_logging()


@pytest.fixture
def settings(tmp_path):
    return Settings(MEDIA_UPLOAD_DIR=str(tmp_path / "media"), MAX_UPLOAD_SIZE=1024)


@pytest.fixture
def services(settings):
    return ServiceContainer(settings)


@pytest.fixture
def alice(services):
    return services.spreadsheets.register_user("alice", "alice@example.com")


@pytest.fixture
def bob(services):
    return services.spreadsheets.register_user("bob")


@pytest.fixture
def carol(services):
    return services.spreadsheets.register_user("carol")


@pytest.fixture
def spreadsheet(services, alice):
    """Spreadsheet owned by alice with its default sheet."""
    return services.spreadsheets.create_spreadsheet("Budget", "Quarterly numbers", "alice")


@pytest.fixture
def sheet_id(spreadsheet):
    return spreadsheet.sheets[0]["id"]


@pytest.fixture
def grant(services, spreadsheet):
    def _grant(username, level):
        return services.spreadsheets.grant_permission(spreadsheet.id, "alice", username, PermissionType(level))
    return _grant
