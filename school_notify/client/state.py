# school_notify/client/state.py
import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from school_notify.client.events import EventEmitter
from school_notify.client.feed import FeedSource
from school_notify.exceptions import NotificationError
from school_notify.models.notification import Notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """Identidad del usuario autenticado, se pasa explícita al estado."""
    user_id: str
    token: Optional[str] = None


class NotificationClientState:
    """
    Cache de notificaciones de una sesión: lista (más nuevas primero) + unread_count.

    Es una proyección descartable del store del servidor:
      - mark_as_read / mark_all_as_read / delete_notification llaman al servidor
        y solo tocan la cache si la llamada salió bien.
      - on_feed_event es la única actualización optimista: confía en el evento
        tal cual llega y nunca llama al servidor.
    Eventos emitidos: notification_received, notification_read, all_marked_read,
    notification_deleted, error.
    """

    def __init__(self, api, feed: FeedSource, emitter: EventEmitter = None, page_size: int = 20):
        self.api = api
        self.feed = feed
        self.events = emitter or EventEmitter()
        self.page_size = page_size

        self.notifications: List[Notification] = []
        self.unread_count = 0
        self.loading = False
        self.session: Optional[Session] = None

        self._subscription: Any = None
        # cambia en cada initialize/teardown; una respuesta de otra sesión se descarta
        self._generation = 0

    def _index(self, notification_id: str) -> Optional[int]:
        for i, n in enumerate(self.notifications):
            if n.id == notification_id:
                return i
        return None

    def _decrement(self):
        self.unread_count = max(0, self.unread_count - 1)

    async def _server(self, action: str, call):
        try:
            return await call
        except NotificationError as e:
            logger.warning("%s falló: %s", action, e)
            self.events.emit("error", action, e)
            raise

    async def initialize(self, session: Session):
        """Carga la primera página y el contador, y se suscribe al feed del usuario."""
        self.teardown()
        self.session = session
        generation = self._generation
        if session.token and hasattr(self.api, "authenticate"):
            self.api.authenticate(session.token)

        self.loading = True
        try:
            items, _ = await self._server("initialize", self.api.list(page=1, limit=self.page_size))
            count = await self._server("initialize", self.api.unread_count())
        finally:
            if generation == self._generation:
                self.loading = False
        if generation != self._generation:
            return

        self.notifications = list(items)
        self.unread_count = max(0, count)
        self._subscription = self.feed.subscribe(session.user_id, self.on_feed_event)

    def on_feed_event(self, notification: Notification) -> bool:
        """Agrega un INSERT del feed. Devuelve False si se ignoró (otro usuario o id repetido)."""
        if self.session is None or notification.userId != self.session.user_id:
            return False
        if self._index(notification.id) is not None:
            # entrega at-least-once: ya la teníamos
            return False
        self.notifications.insert(0, notification)
        if not notification.isRead:
            self.unread_count += 1
        self.events.emit("notification_received", notification)
        return True

    async def _resync_count(self, generation: int):
        # la notificación no está en la cache (página vieja): pedimos el contador real
        count = await self._server("unread_count", self.api.unread_count())
        if generation == self._generation:
            self.unread_count = max(0, count)

    async def mark_as_read(self, notification_id: str):
        generation = self._generation
        await self._server("mark_as_read", self.api.mark_read(notification_id))
        if generation != self._generation:
            return

        index = self._index(notification_id)
        if index is None:
            await self._resync_count(generation)
        elif not self.notifications[index].isRead:
            self.notifications[index] = self.notifications[index].as_read()
            self._decrement()
        self.events.emit("notification_read", notification_id)

    async def mark_all_as_read(self) -> int:
        generation = self._generation
        updated = await self._server("mark_all_as_read", self.api.mark_all_read())
        if generation != self._generation:
            return updated

        self.notifications = [n.as_read() for n in self.notifications]
        self.unread_count = 0
        self.events.emit("all_marked_read", updated)
        return updated

    async def delete_notification(self, notification_id: str):
        generation = self._generation
        await self._server("delete_notification", self.api.delete(notification_id))
        if generation != self._generation:
            return

        index = self._index(notification_id)
        if index is None:
            await self._resync_count(generation)
        else:
            removed = self.notifications.pop(index)
            if not removed.isRead:
                self._decrement()
        self.events.emit("notification_deleted", notification_id)

    async def refresh(self):
        """Vuelve a traer la primera página y el contador (p.ej. tras reconectar el feed)."""
        if self.session is None:
            return
        generation = self._generation
        items, _ = await self._server("refresh", self.api.list(page=1, limit=self.page_size))
        count = await self._server("refresh", self.api.unread_count())
        if generation != self._generation:
            return
        self.notifications = list(items)
        self.unread_count = max(0, count)

    async def load_more(self) -> int:
        """
        Trae las entradas más viejas que siguen a la cache; devuelve cuántas agregó.
        La página sale de len(notifications) y no de un contador: los borrados
        y los INSERT del feed corren el listado del servidor.
        """
        if self.session is None:
            return 0
        generation = self._generation
        page = len(self.notifications) // self.page_size + 1
        while True:
            items, _ = await self._server(
                "load_more", self.api.list(page=page, limit=self.page_size)
            )
            if generation != self._generation:
                return 0
            added = [n for n in items if self._index(n.id) is None]
            self.notifications.extend(added)
            # una página entera ya cacheada (INSERTs que no llegaron por el feed): seguir
            if added or len(items) < self.page_size:
                return len(added)
            page += 1

    def teardown(self):
        """Corta la suscripción y descarta la cache."""
        self._generation += 1
        if self._subscription is not None:
            self.feed.unsubscribe(self._subscription)
            self._subscription = None
        self.session = None
        self.notifications = []
        self.unread_count = 0
        self.loading = False
