# school_notify/infra/store.py
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from school_notify import config
from school_notify.models.notification import Notification


class NotificationStore(ABC):
    """
    Persistencia de notificaciones por destinatario.
    Todas las operaciones están acotadas al dueño (user_id):
    una notificación de otro usuario se comporta como inexistente.
    """

    @abstractmethod
    def insert(self, notification: Notification) -> bool:
        """
        Guarda la notificación. Devuelve False si el id ya existía
        o si su dueño la borró (una re-entrega no la revive).
        """

    @abstractmethod
    def get(self, user_id: str, notification_id: str) -> Notification:
        """Lanza NotFound si no existe o no es de user_id."""

    @abstractmethod
    def list(self, user_id: str, page: int = 1, page_size: int = 20,
             is_read: Optional[bool] = None) -> Tuple[List[Notification], int]:
        """Página de notificaciones, más nuevas primero, y el total filtrado."""

    @abstractmethod
    def unread_count(self, user_id: str) -> int:
        ...

    @abstractmethod
    def mark_read(self, user_id: str, notification_id: str) -> Notification:
        """Idempotente: marcar dos veces deja isRead=True."""

    @abstractmethod
    def mark_all_read(self, user_id: str) -> int:
        """Devuelve cuántas pasaron de no leídas a leídas."""

    @abstractmethod
    def delete(self, user_id: str, notification_id: str) -> None:
        ...


def newest_first(items) -> List[Notification]:
    # desempate por id para que el orden sea estable entre llamadas
    return sorted(items, key=lambda n: (n.createdAt, n.id), reverse=True)


def paginate(items: List[Notification], page: int, page_size: int) -> List[Notification]:
    offset = (page - 1) * page_size
    return items[offset:offset + page_size]


def create_store(kind: str = None) -> NotificationStore:
    kind = (kind or config.NOTIFICATION_STORE).lower()
    if kind == "table":
        from school_notify.infra.table_client import TableNotificationStore
        return TableNotificationStore()
    if kind == "memory":
        from school_notify.infra.memory_store import MemoryNotificationStore
        return MemoryNotificationStore()
    raise ValueError(f"NOTIFICATION_STORE desconocido: {kind}")
