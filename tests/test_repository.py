import pytest

from sheetstore.exceptions import InvalidStateError, NotFoundError
from sheetstore.models.spreadsheet_model import Media, Sheet, Spreadsheet


@pytest.fixture
def repository(services):
    return services.repository


def _names(spreadsheet):
    return [sheet.name for sheet in spreadsheet.sheets]


class TestTransactionRollback:

    def test_reference_stays_live_after_failed_sheet_delete(self, services, repository, spreadsheet, sheet_id):
        live = repository.get_spreadsheet(spreadsheet.id)

        with pytest.raises(InvalidStateError):
            services.mutations.delete_sheet(sheet_id, "alice")

        late = repository.add_sheet(live, Sheet(name="Late", spreadsheet_id=live.id, order_index=1))
        assert repository.get_spreadsheet(spreadsheet.id) is live
        assert _names(live) == ["Sheet1", "Late"]
        assert repository.get_sheet(late.id) == (live, late)

    def test_changes_are_undone_on_the_same_objects(self, repository, spreadsheet, sheet_id, bob, grant):
        grant("bob", "VIEW")
        live = repository.get_spreadsheet(spreadsheet.id)
        first = live.sheets[0]
        added = Sheet(name="Extra", spreadsheet_id=live.id, order_index=1)
        media = Media(spreadsheet_id=live.id, filename="a.txt", storage_key="k.txt")

        with pytest.raises(RuntimeError):
            with repository.transaction():
                repository.add_sheet(live, added)
                repository.rename_sheet(live, first, "Renamed")
                repository.update_spreadsheet(live, name="Other", description=None)
                repository.add_media(live, media)
                repository.delete_permission(live.id, bob.user_id)
                raise RuntimeError("boom")

        assert repository.get_spreadsheet(spreadsheet.id) is live
        assert live.sheets[0] is first
        assert _names(live) == ["Sheet1"]
        assert live.name == "Budget"
        assert live.description == "Quarterly numbers"
        assert live.media_files == []
        assert repository.find_permission(live.id, bob.user_id) is not None
        with pytest.raises(NotFoundError):
            repository.get_sheet(added.id)
        with pytest.raises(NotFoundError):
            repository.get_media(media.id)

    def test_new_spreadsheet_is_removed_with_its_indexes(self, repository, alice):
        spreadsheet = Spreadsheet(name="Draft", owner_id=alice.user_id)
        sheet = Sheet(name="Sheet1", spreadsheet_id=spreadsheet.id)
        spreadsheet.sheets.append(sheet)

        with pytest.raises(RuntimeError):
            with repository.transaction():
                repository.add_spreadsheet(spreadsheet)
                raise RuntimeError("boom")

        with pytest.raises(NotFoundError):
            repository.get_spreadsheet(spreadsheet.id)
        with pytest.raises(NotFoundError):
            repository.get_sheet(sheet.id)

    def test_deleted_spreadsheet_comes_back(self, repository, spreadsheet, sheet_id, bob, grant):
        grant("bob", "EDIT")
        live = repository.get_spreadsheet(spreadsheet.id)

        with pytest.raises(RuntimeError):
            with repository.transaction():
                repository.delete_spreadsheet(spreadsheet.id)
                raise RuntimeError("boom")

        assert repository.get_spreadsheet(spreadsheet.id) is live
        assert repository.get_sheet(sheet_id)[0] is live
        assert repository.find_permission(live.id, bob.user_id) is not None

    def test_nested_failure_rolls_back_outer_work(self, repository, spreadsheet):
        live = repository.get_spreadsheet(spreadsheet.id)

        with pytest.raises(RuntimeError):
            with repository.transaction():
                repository.add_sheet(live, Sheet(name="Outer", spreadsheet_id=live.id, order_index=1))
                with repository.transaction():
                    repository.add_sheet(live, Sheet(name="Inner", spreadsheet_id=live.id, order_index=2))
                    raise RuntimeError("boom")

        assert _names(live) == ["Sheet1"]


class TestTransactionCommit:

    def test_committed_changes_stay(self, repository, spreadsheet):
        live = repository.get_spreadsheet(spreadsheet.id)
        with repository.transaction():
            sheet = repository.add_sheet(live, Sheet(name="Kept", spreadsheet_id=live.id, order_index=1))
        assert _names(live) == ["Sheet1", "Kept"]
        assert repository.get_sheet(sheet.id) == (live, sheet)

    def test_failed_transaction_does_not_undo_earlier_commits(self, repository, spreadsheet):
        live = repository.get_spreadsheet(spreadsheet.id)
        with repository.transaction():
            repository.add_sheet(live, Sheet(name="First", spreadsheet_id=live.id, order_index=1))

        with pytest.raises(RuntimeError):
            with repository.transaction():
                repository.add_sheet(live, Sheet(name="Second", spreadsheet_id=live.id, order_index=2))
                raise RuntimeError("boom")

        assert _names(live) == ["Sheet1", "First"]
