"""Test doubles shared by the client tests."""

import math
from datetime import datetime, timedelta, timezone

from school_notify.exceptions import TransientIO
from school_notify.models.notification import Notification, Pagination

BASE_TIME = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)


def make_notification(id, user_id="u1", minutes=0, is_read=False,
                      type="system", reference_id=None):
    """Notification created `minutes` after BASE_TIME."""
    return Notification(
        id=str(id),
        userId=user_id,
        type=type,
        title=f"title {id}",
        message=f"message {id}",
        referenceId=reference_id,
        isRead=is_read,
        createdAt=BASE_TIME + timedelta(minutes=minutes),
    )


class StoreApi:
    """Async API facade over a NotificationStore, scoped to one user."""

    def __init__(self, store, user_id):
        self.store = store
        self.user_id = user_id
        self.fail_next = None
        self.calls = []
        self.token = None

    def authenticate(self, token):
        self.token = token

    def _maybe_fail(self, name):
        self.calls.append(name)
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

    async def list(self, page=1, limit=20, is_read=None):
        self._maybe_fail("list")
        items, total = self.store.list(self.user_id, page, limit, is_read=is_read)
        return items, Pagination(page=page, limit=limit, total=total,
                                 pages=math.ceil(total / limit))

    async def unread_count(self):
        self._maybe_fail("unread_count")
        return self.store.unread_count(self.user_id)

    async def mark_read(self, notification_id):
        self._maybe_fail("mark_read")
        return self.store.mark_read(self.user_id, notification_id)

    async def mark_all_read(self):
        self._maybe_fail("mark_all_read")
        return self.store.mark_all_read(self.user_id)

    async def delete(self, notification_id):
        self._maybe_fail("delete")
        self.store.delete(self.user_id, notification_id)


def transient():
    return TransientIO("store down")
