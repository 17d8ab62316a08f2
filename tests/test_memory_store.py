"""Tests for the in-memory notification store."""

import threading

import pytest

from school_notify.exceptions import NotFound
from tests.fakes import make_notification


@pytest.fixture
def seeded(store):
    for i, minutes in enumerate([5, 1, 3]):
        store.insert(make_notification(f"n{i}", "u1", minutes=minutes))
    store.insert(make_notification("other", "u2", minutes=10))
    return store


class TestMemoryNotificationStore:
    def test_insert_rejects_duplicate_id(self, store):
        """Test that a second insert with the same id is reported, not stored."""
        assert store.insert(make_notification("a")) is True
        assert store.insert(make_notification("a", minutes=9)) is False
        items, total = store.list("u1")
        assert total == 1
        assert items[0].createdAt == make_notification("a").createdAt

    def test_deleted_id_is_not_inserted_again(self, seeded):
        """Test that a redelivered id stays deleted once its owner removed it."""
        seeded.delete("u1", "n0")
        assert seeded.insert(make_notification("n0", "u1", minutes=5)) is False
        with pytest.raises(NotFound):
            seeded.get("u1", "n0")
        assert seeded.list("u1")[1] == 2

    def test_list_is_newest_first_and_scoped_to_owner(self, seeded):
        """Test ordering by createdAt descending and per-user scoping."""
        items, total = seeded.list("u1")
        assert [n.id for n in items] == ["n0", "n2", "n1"]
        assert total == 3
        assert all(n.userId == "u1" for n in items)

    def test_list_paginates(self, seeded):
        """Test page/page_size slicing keeps the total."""
        page2, total = seeded.list("u1", page=2, page_size=2)
        assert [n.id for n in page2] == ["n1"]
        assert total == 3

    def test_list_filters_by_read_state(self, seeded):
        """Test the is_read filter."""
        seeded.mark_read("u1", "n2")
        unread, total = seeded.list("u1", is_read=False)
        assert {n.id for n in unread} == {"n0", "n1"}
        assert total == 2
        read, _ = seeded.list("u1", is_read=True)
        assert [n.id for n in read] == ["n2"]

    def test_unread_count(self, seeded):
        """Test unread count per user."""
        assert seeded.unread_count("u1") == 3
        assert seeded.unread_count("u2") == 1
        assert seeded.unread_count("nobody") == 0

    def test_mark_read_is_idempotent(self, seeded):
        """Test marking twice leaves isRead True and counts once."""
        first = seeded.mark_read("u1", "n0")
        second = seeded.mark_read("u1", "n0")
        assert first.isRead and second.isRead
        assert seeded.unread_count("u1") == 2

    def test_mark_read_other_users_notification_is_not_found(self, seeded):
        """Test ownership: another user's notification behaves as missing."""
        with pytest.raises(NotFound):
            seeded.mark_read("u1", "other")
        with pytest.raises(NotFound):
            seeded.mark_read("u1", "missing")
        assert seeded.get("u2", "other").isRead is False

    def test_mark_all_read_returns_affected_count(self, seeded):
        """Test mark_all_read flips only the owner's unread rows."""
        seeded.mark_read("u1", "n1")
        assert seeded.mark_all_read("u1") == 2
        assert seeded.unread_count("u1") == 0
        assert seeded.unread_count("u2") == 1

    def test_mark_all_read_on_read_set_is_noop(self, seeded):
        """Test a second mark_all_read affects nothing."""
        seeded.mark_all_read("u1")
        assert seeded.mark_all_read("u1") == 0

    def test_delete(self, seeded):
        """Test delete removes the row and enforces ownership."""
        seeded.delete("u1", "n0")
        with pytest.raises(NotFound):
            seeded.get("u1", "n0")
        with pytest.raises(NotFound):
            seeded.delete("u1", "n0")
        with pytest.raises(NotFound):
            seeded.delete("u1", "other")
        assert seeded.unread_count("u2") == 1

    def test_concurrent_inserts_keep_every_row(self, store):
        """Test the lock under parallel writers."""
        def writer(offset):
            for i in range(50):
                store.insert(make_notification(f"{offset}-{i}", minutes=i))

        threads = [threading.Thread(target=writer, args=(t,)) for t in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert store.unread_count("u1") == 200
