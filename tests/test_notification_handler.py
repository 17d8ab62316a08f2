"""Tests for the ingest path (queue message -> store -> feed)."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

from school_notify.infra import servicebus_consumer
from school_notify.infra.servicebus_consumer import handle_message
from school_notify.models.notification import NotificationType
from school_notify.services.change_feed import ChangeFeed
from school_notify.services.notification_handler import (
    DEFAULT_TEXTS,
    process_notification,
    resolve_type,
)


def run(coro):
    return asyncio.run(coro)


class TestProcessNotification:
    def test_persists_then_publishes(self, store):
        """Test the stored row is readable when the feed event is handled."""
        async def scenario():
            feed = ChangeFeed()
            visible_at_delivery = []

            def handler(n):
                visible_at_delivery.append(store.get(n.userId, n.id).id)

            sub = feed.subscribe("u1", handler)
            n = await process_notification(
                {"type": "grade_input", "userId": "u1", "title": "Nilai Baru",
                 "message": "Matematika: 90", "referenceId": "g-1"},
                store, feed,
            )
            await sub.flush()
            return n, visible_at_delivery

        n, visible = run(scenario())
        assert visible == [n.id]
        assert n.type == "grade_input"
        assert n.referenceId == "g-1"
        assert n.isRead is False
        assert store.unread_count("u1") == 1

    def test_default_texts_and_unknown_type(self, store):
        """Test fallback title/message and coercion of unknown types to system."""
        n = run(process_notification({"type": "SOMETHING_NEW", "userId": 7}, store, ChangeFeed()))
        assert n.type == NotificationType.SYSTEM.value
        assert (n.title, n.message) == DEFAULT_TEXTS[NotificationType.SYSTEM]
        assert n.userId == "7"

    def test_invalid_message_is_dropped(self, store):
        """Test a message without userId is discarded."""
        assert run(process_notification({"type": "system"}, store, ChangeFeed())) is None
        assert store.unread_count("u1") == 0

    def test_redelivery_republishes_without_duplicating(self, store):
        """Test at-least-once: same message id -> one row, event sent again."""
        async def scenario():
            feed = ChangeFeed()
            seen = []
            sub = feed.subscribe("u1", seen.append)
            msg = {"type": "system", "userId": "u1", "message": "hello"}
            first = await process_notification(msg, store, feed, message_id="m-1")
            second = await process_notification(msg, store, feed, message_id="m-1")
            await sub.flush()
            return first, second, seen

        first, second, seen = run(scenario())
        assert first.id == second.id == "m-1"
        assert second.createdAt == first.createdAt
        assert [n.id for n in seen] == ["m-1", "m-1"]
        assert store.list("u1")[1] == 1

    def test_redelivery_after_delete_does_not_restore_the_row(self, store):
        """Test that a notification deleted by its owner stays deleted on redelivery."""
        async def scenario():
            feed = ChangeFeed()
            seen = []
            sub = feed.subscribe("u1", seen.append)
            msg = {"type": "system", "userId": "u1", "message": "hello"}
            await process_notification(msg, store, feed, message_id="m-1")
            store.delete("u1", "m-1")
            again = await process_notification(msg, store, feed, message_id="m-1")
            await sub.flush()
            return again, seen

        again, seen = run(scenario())
        assert again is None
        assert [n.id for n in seen] == ["m-1"]
        assert store.list("u1")[1] == 0

    def test_email_only_for_new_rows(self, store):
        """Test the e-mail step runs once per notification, not per delivery."""
        email = MagicMock()
        email.notify = AsyncMock(return_value=True)
        msg = {"type": "grade_input", "userId": "u1", "message": "Matematika: 90"}

        async def scenario():
            feed = ChangeFeed()
            await process_notification(msg, store, feed, message_id="m-1", email=email)
            await process_notification(msg, store, feed, message_id="m-1", email=email)

        run(scenario())
        email.notify.assert_awaited_once()
        assert email.notify.await_args.args[0].id == "m-1"

    def test_resolve_type(self):
        """Test known and unknown type names."""
        assert resolve_type("material_uploaded") is NotificationType.MATERIAL_UPLOADED
        assert resolve_type("nope") is NotificationType.SYSTEM


class TestHandleMessage:
    def _message(self, payload, message_id="m-1"):
        msg = MagicMock()
        msg.body = [json.dumps(payload).encode("utf-8")]
        msg.message_id = message_id
        return msg

    def test_completes_after_processing(self, store):
        """Test the queue message is completed once stored."""
        receiver = MagicMock()
        receiver.complete_message = AsyncMock()
        msg = self._message({"type": "user_created", "userId": "u1"})

        run(handle_message(msg, receiver, store, ChangeFeed()))

        receiver.complete_message.assert_awaited_once_with(msg)
        assert store.get("u1", "m-1").type == "user_created"
        assert servicebus_consumer.consumer_status()["lastMessageAt"] is not None

    def test_completes_redelivery_of_deleted_notification(self, store):
        """Test a message whose notification was deleted is settled, not retried."""
        receiver = MagicMock()
        receiver.complete_message = AsyncMock()
        msg = self._message({"type": "system", "userId": "u1"})
        feed = ChangeFeed()

        run(handle_message(msg, receiver, store, feed))
        store.delete("u1", "m-1")
        run(handle_message(msg, receiver, store, feed))

        assert receiver.complete_message.await_count == 2
        assert store.unread_count("u1") == 0

    def test_does_not_complete_on_failure(self, store):
        """Test a failing message stays on the queue for redelivery."""
        receiver = MagicMock()
        receiver.complete_message = AsyncMock()
        msg = MagicMock()
        msg.body = [b"not json"]
        msg.message_id = "bad"

        run(handle_message(msg, receiver, store, ChangeFeed()))

        receiver.complete_message.assert_not_awaited()
        assert "JSONDecodeError" in servicebus_consumer.consumer_status()["lastError"]

    def test_consumer_without_connection_string_returns(self, store, monkeypatch):
        """Test the consumer is a no-op when Service Bus is not configured."""
        monkeypatch.setattr(servicebus_consumer.config, "SB_CONN_STR", None)
        assert run(servicebus_consumer.consume_notifications(store, ChangeFeed())) is None
