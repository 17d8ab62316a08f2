# school_notify/infra/memory_store.py
import threading
from typing import Dict, List, Optional, Set, Tuple

from school_notify.exceptions import NotFound
from school_notify.infra.store import NotificationStore, newest_first, paginate
from school_notify.models.notification import Notification


class MemoryNotificationStore(NotificationStore):
    """
    Store en memoria para desarrollo local y tests.
    Un lock protege todo: mark_all_read es atómico respecto a las demás operaciones.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._rows: Dict[str, Notification] = {}
        self._deleted: Set[str] = set()

    def insert(self, notification: Notification) -> bool:
        with self._lock:
            if notification.id in self._rows or notification.id in self._deleted:
                return False
            self._rows[notification.id] = notification
            return True

    def _owned(self, user_id: str, notification_id: str) -> Notification:
        row = self._rows.get(notification_id)
        if row is None or row.userId != user_id:
            raise NotFound()
        return row

    def get(self, user_id: str, notification_id: str) -> Notification:
        with self._lock:
            return self._owned(user_id, notification_id)

    def list(self, user_id: str, page: int = 1, page_size: int = 20,
             is_read: Optional[bool] = None) -> Tuple[List[Notification], int]:
        with self._lock:
            rows = [n for n in self._rows.values() if n.userId == user_id]
        if is_read is not None:
            rows = [n for n in rows if n.isRead == is_read]
        rows = newest_first(rows)
        return paginate(rows, page, page_size), len(rows)

    def unread_count(self, user_id: str) -> int:
        with self._lock:
            return sum(1 for n in self._rows.values() if n.userId == user_id and not n.isRead)

    def mark_read(self, user_id: str, notification_id: str) -> Notification:
        with self._lock:
            row = self._owned(user_id, notification_id).as_read()
            self._rows[notification_id] = row
            return row

    def mark_all_read(self, user_id: str) -> int:
        with self._lock:
            unread = [n for n in self._rows.values() if n.userId == user_id and not n.isRead]
            for n in unread:
                self._rows[n.id] = n.as_read()
            return len(unread)

    def delete(self, user_id: str, notification_id: str) -> None:
        with self._lock:
            self._owned(user_id, notification_id)
            del self._rows[notification_id]
            self._deleted.add(notification_id)
