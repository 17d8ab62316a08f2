# school_notify/services/change_feed.py
import asyncio
import inspect
import logging
import threading
from typing import Callable, Dict, List, Optional

from school_notify import config
from school_notify.models.notification import Notification

logger = logging.getLogger(__name__)


def _in_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


class Subscription:
    """
    Suscripción de un usuario al feed.
    Cada suscripción tiene su cola FIFO y una sola tarea que la vacía,
    así los eventos de un usuario llegan en el orden en que se publicaron.
    Si la cola se llena (consumidor lento) la suscripción se cierra y se
    llama on_overflow; el cliente reconecta y refresca.
    """

    def __init__(self, feed: "ChangeFeed", user_id: str, on_event: Callable,
                 loop: asyncio.AbstractEventLoop, maxsize: int = 0,
                 on_overflow: Optional[Callable] = None):
        self.user_id = user_id
        self._feed = feed
        self._on_event = on_event
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._on_overflow = on_overflow
        self._active = True
        self._task = loop.create_task(self._pump())

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, notification: Notification):
        if not self._active:
            return
        if _in_loop(self._loop):
            self._enqueue(notification)
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._enqueue, notification)

    def _enqueue(self, notification: Notification):
        if not self._active:
            return
        try:
            self._queue.put_nowait(notification)
        except asyncio.QueueFull:
            logger.warning(
                "Cola del feed llena para user %s (%d eventos), se cierra la suscripción",
                self.user_id, self._queue.maxsize,
            )
            self.close()
            if self._on_overflow is not None:
                result = self._on_overflow()
                if inspect.isawaitable(result):
                    asyncio.ensure_future(result)

    async def _pump(self):
        while True:
            notification = await self._queue.get()
            try:
                if self._active:
                    result = self._on_event(notification)
                    if inspect.isawaitable(result):
                        await result
            except Exception:
                logger.exception("Handler del feed falló para user %s", self.user_id)
            finally:
                self._queue.task_done()

    async def flush(self):
        """Espera a que se procesen todos los eventos encolados."""
        if self._active:
            await self._queue.join()

    def close(self):
        """Idempotente y seguro desde cualquier hilo."""
        if not self._active:
            return
        self._active = False
        self._feed._remove(self)
        if _in_loop(self._loop):
            self._stop()
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._stop)

    def _stop(self):
        self._task.cancel()
        # lo encolado ya no se entrega; liberar a quien espera en flush()
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()


class ChangeFeed:
    """
    Publica cada notificación insertada a las suscripciones de su dueño.
    user_id -> [Subscription]
    """

    def __init__(self, max_queue: int = None):
        self._lock = threading.Lock()
        self._max_queue = config.FEED_QUEUE_SIZE if max_queue is None else max_queue
        self._subscriptions: Dict[str, List[Subscription]] = {}

    def subscribe(self, user_id: str, on_event: Callable,
                  on_overflow: Optional[Callable] = None) -> Subscription:
        # se llama desde el event loop que va a ejecutar on_event
        subscription = Subscription(
            self, user_id, on_event, asyncio.get_running_loop(),
            maxsize=self._max_queue, on_overflow=on_overflow,
        )
        with self._lock:
            self._subscriptions.setdefault(user_id, []).append(subscription)
        logger.debug("Suscripción abierta para user %s", user_id)
        return subscription

    def unsubscribe(self, subscription: Subscription):
        subscription.close()

    def _remove(self, subscription: Subscription):
        with self._lock:
            subs = self._subscriptions.get(subscription.user_id)
            if not subs:
                return
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                del self._subscriptions[subscription.user_id]

    def publish(self, notification: Notification) -> int:
        """Entrega solo a las suscripciones de notification.userId."""
        with self._lock:
            targets = list(self._subscriptions.get(notification.userId, ()))
        for subscription in targets:
            subscription.deliver(notification)
        return len(targets)

    def subscriber_count(self, user_id: str = None) -> int:
        with self._lock:
            if user_id is not None:
                return len(self._subscriptions.get(user_id, ()))
            return sum(len(subs) for subs in self._subscriptions.values())

    def close_all(self):
        with self._lock:
            subs = [s for group in self._subscriptions.values() for s in group]
        for subscription in subs:
            subscription.close()
