# school_notify/services/notification_service.py
import math
from typing import Optional

from school_notify.exceptions import Unauthorized
from school_notify.infra.store import NotificationStore
from school_notify.models.notification import Notification, NotificationPage, Pagination


class NotificationService:
    """
    Operaciones del dueño sobre sus notificaciones.
    caller_id viene del JWT; si no coincide con user_id se rechaza
    antes de tocar el store.
    """

    def __init__(self, store: NotificationStore):
        self.store = store

    @staticmethod
    def _authorize(caller_id: str, user_id: str):
        if not caller_id or caller_id != user_id:
            raise Unauthorized("Solo puedes ver tus propias notificaciones")

    def list(self, caller_id: str, user_id: str, page: int = 1, page_size: int = 20,
             is_read: Optional[bool] = None) -> NotificationPage:
        self._authorize(caller_id, user_id)
        items, total = self.store.list(user_id, page, page_size, is_read=is_read)
        return NotificationPage(
            data=items,
            pagination=Pagination(
                page=page,
                limit=page_size,
                total=total,
                pages=math.ceil(total / page_size) if page_size else 0,
            ),
        )

    def unread_count(self, caller_id: str, user_id: str) -> int:
        self._authorize(caller_id, user_id)
        return self.store.unread_count(user_id)

    def mark_read(self, caller_id: str, user_id: str, notification_id: str) -> Notification:
        self._authorize(caller_id, user_id)
        return self.store.mark_read(user_id, notification_id)

    def mark_all_read(self, caller_id: str, user_id: str) -> int:
        self._authorize(caller_id, user_id)
        return self.store.mark_all_read(user_id)

    def delete(self, caller_id: str, user_id: str, notification_id: str) -> None:
        self._authorize(caller_id, user_id)
        self.store.delete(user_id, notification_id)
