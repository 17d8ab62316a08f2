"""Tests for the Azure Table Storage backend (SDK mocked)."""

from unittest.mock import MagicMock

import pytest
from azure.core.exceptions import (
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
    ServiceRequestError,
)
from azure.data.tables import UpdateMode

from school_notify.exceptions import NotFound, TransientIO
from school_notify.infra.table_client import (
    MAX_BATCH,
    TableNotificationStore,
    from_entity,
    to_entity,
)
from tests.fakes import make_notification


@pytest.fixture
def table():
    return MagicMock()


@pytest.fixture
def tombstones():
    client = MagicMock()
    client.get_entity.side_effect = ResourceNotFoundError("no tombstone")
    return client


@pytest.fixture
def table_store(table, tombstones):
    return TableNotificationStore(table_client=table, tombstone_client=tombstones)


class TestEntityMapping:
    def test_round_trip_keeps_fields(self):
        """Test PartitionKey/RowKey mapping and field names."""
        n = make_notification("n1", "u1", reference_id="grade-9", type="grade_input")
        entity = to_entity(n)
        assert entity["PartitionKey"] == "u1"
        assert entity["RowKey"] == "n1"
        assert entity["read"] is False
        assert entity["referenceId"] == "grade-9"
        assert from_entity(entity) == n

    def test_missing_reference_is_not_stored(self):
        """Test that a null referenceId is omitted from the entity."""
        assert "referenceId" not in to_entity(make_notification("n1"))

    def test_entity_without_read_counts_as_unread(self):
        """Test legacy rows without 'read'."""
        entity = to_entity(make_notification("n1"))
        del entity["read"]
        assert from_entity(entity).isRead is False


class TestTableNotificationStore:
    def test_insert(self, table_store, table):
        """Test insert creates the entity."""
        assert table_store.insert(make_notification("n1")) is True
        table.create_entity.assert_called_once()

    def test_insert_existing_returns_false(self, table_store, table):
        """Test a redelivered id is reported instead of raised."""
        table.create_entity.side_effect = ResourceExistsError("exists")
        assert table_store.insert(make_notification("n1")) is False

    def test_insert_of_deleted_id_is_skipped(self, table_store, table, tombstones):
        """Test a redelivered message does not recreate a row its owner deleted."""
        tombstones.get_entity.side_effect = None
        tombstones.get_entity.return_value = {"PartitionKey": "u1", "RowKey": "n1"}
        assert table_store.insert(make_notification("n1")) is False
        table.create_entity.assert_not_called()
        tombstones.get_entity.assert_called_once_with(partition_key="u1", row_key="n1")

    def test_list_sorts_newest_first_with_parameterized_filter(self, table_store, table):
        """Test sorting and the owner filter."""
        table.query_entities.return_value = [
            to_entity(make_notification("old", minutes=1)),
            to_entity(make_notification("new", minutes=9)),
        ]
        items, total = table_store.list("u1")
        assert [n.id for n in items] == ["new", "old"]
        assert total == 2
        kwargs = table.query_entities.call_args.kwargs
        assert kwargs["query_filter"] == "PartitionKey eq @pk"
        assert kwargs["parameters"] == {"pk": "u1"}

    def test_unread_count_filters_on_read(self, table_store, table):
        """Test unread_count queries read eq false."""
        table.query_entities.return_value = [{"RowKey": "a"}, {"RowKey": "b"}]
        assert table_store.unread_count("u1") == 2
        kwargs = table.query_entities.call_args.kwargs
        assert "read eq @read" in kwargs["query_filter"]
        assert kwargs["parameters"]["read"] is False

    def test_get_missing_raises_not_found(self, table_store, table):
        """Test ResourceNotFoundError translation."""
        table.get_entity.side_effect = ResourceNotFoundError("missing")
        with pytest.raises(NotFound):
            table_store.get("u1", "n1")

    def test_mark_read_updates_once(self, table_store, table):
        """Test mark_read merges read=True only when unread."""
        table.get_entity.return_value = to_entity(make_notification("n1"))
        assert table_store.mark_read("u1", "n1").isRead is True
        table.update_entity.assert_called_once()
        assert table.update_entity.call_args.kwargs["mode"] == UpdateMode.MERGE

        table.update_entity.reset_mock()
        table.get_entity.return_value = to_entity(make_notification("n1", is_read=True))
        assert table_store.mark_read("u1", "n1").isRead is True
        table.update_entity.assert_not_called()

    def test_mark_all_read_uses_batched_transactions(self, table_store, table):
        """Test entity-group transactions of at most MAX_BATCH operations."""
        table.query_entities.return_value = [
            {"PartitionKey": "u1", "RowKey": str(i)} for i in range(MAX_BATCH * 2 + 5)
        ]
        assert table_store.mark_all_read("u1") == MAX_BATCH * 2 + 5
        batches = [c.args[0] for c in table.submit_transaction.call_args_list]
        assert [len(b) for b in batches] == [MAX_BATCH, MAX_BATCH, 5]
        op, entity, options = batches[0][0]
        assert op == "update"
        assert entity == {"PartitionKey": "u1", "RowKey": "0", "read": True}
        assert options == {"mode": UpdateMode.MERGE}

    def test_mark_all_read_nothing_unread(self, table_store, table):
        """Test no transaction is sent when nothing is unread."""
        table.query_entities.return_value = []
        assert table_store.mark_all_read("u1") == 0
        table.submit_transaction.assert_not_called()

    def test_delete_missing_raises_not_found(self, table_store, table, tombstones):
        """Test delete checks existence first."""
        table.get_entity.side_effect = ResourceNotFoundError("missing")
        with pytest.raises(NotFound):
            table_store.delete("u1", "n1")
        table.delete_entity.assert_not_called()
        tombstones.upsert_entity.assert_not_called()

    def test_delete_leaves_tombstone(self, table_store, table, tombstones):
        """Test delete records the id before removing the row."""
        table.get_entity.return_value = to_entity(make_notification("n1"))
        table_store.delete("u1", "n1")
        entity = tombstones.upsert_entity.call_args.kwargs["entity"]
        assert (entity["PartitionKey"], entity["RowKey"]) == ("u1", "n1")
        assert "deletedAt" in entity
        table.delete_entity.assert_called_once_with(partition_key="u1", row_key="n1")

    @pytest.mark.parametrize("error", [
        HttpResponseError("boom"),
        ServiceRequestError("no route"),
    ])
    def test_sdk_failures_become_transient(self, table_store, table, error):
        """Test service and connection errors map to TransientIO."""
        table.query_entities.side_effect = error
        with pytest.raises(TransientIO):
            table_store.unread_count("u1")
