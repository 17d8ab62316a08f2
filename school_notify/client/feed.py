# school_notify/client/feed.py
import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosedError, InvalidHandshake, WebSocketException

from school_notify.models.notification import Notification

logger = logging.getLogger(__name__)

Handler = Callable[[Notification], Any]

# código de cierre que usa el servidor cuando el token no vale
POLICY_VIOLATION = 1008


class FeedSource(Protocol):
    """
    Fuente de eventos INSERT filtrada por usuario.
    ChangeFeed (en proceso) y WebSocketFeedSource la cumplen.
    """

    def subscribe(self, user_id: str, handler: Handler) -> Any:
        ...

    def unsubscribe(self, handle: Any) -> None:
        ...


async def _call(handler: Callable, *args):
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


def _rejected(error: Exception) -> bool:
    if isinstance(error, ConnectionClosedError):
        return error.rcvd is not None and error.rcvd.code == POLICY_VIOLATION
    if isinstance(error, InvalidHandshake):
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None) or getattr(error, "status_code", None)
        return status in (401, 403)
    return False


class WebSocketSubscription:
    """
    Conexión al endpoint /ws/notifications de un usuario.
    Reconecta con backoff exponencial; tras reconectar llama on_reconnect
    (el estado lo usa para refrescar lo que se perdió mientras estaba caído).
    """

    def __init__(self, url: str, user_id: str, handler: Handler,
                 on_reconnect: Optional[Callable[[], Awaitable[Any]]] = None,
                 initial_backoff: float = 1, max_backoff: float = 30):
        self.url = url
        self.user_id = user_id
        self._handler = handler
        self._on_reconnect = on_reconnect
        self._initial_backoff = initial_backoff
        self._max_backoff = max_backoff
        self._active = True
        self._loop = asyncio.get_running_loop()
        self._task = self._loop.create_task(self._run())

    @property
    def active(self) -> bool:
        return self._active

    async def _dispatch(self, raw):
        try:
            frame = json.loads(raw)
            if not isinstance(frame, dict) or frame.get("event") != "INSERT":
                return
            notification = Notification.model_validate(frame["notification"])
        except (ValueError, KeyError) as e:
            logger.warning("Frame inválido del feed: %s", e)
            return
        if notification.userId != self.user_id:
            logger.warning("Evento de otro usuario descartado (%s)", notification.id)
            return
        if not self._active:
            return
        try:
            await _call(self._handler, notification)
        except Exception:
            logger.exception("Handler del feed falló para user %s", self.user_id)

    async def _reconnected(self):
        try:
            await _call(self._on_reconnect)
        except Exception:
            logger.exception("on_reconnect falló")

    async def _run(self):
        backoff = self._initial_backoff
        connected_before = False
        while self._active:
            try:
                async with websockets.connect(self.url) as ws:
                    if connected_before and self._on_reconnect is not None:
                        await self._reconnected()
                    connected_before = True
                    backoff = self._initial_backoff
                    async for raw in ws:
                        if raw == "pong":
                            continue
                        await self._dispatch(raw)
            except asyncio.CancelledError:
                raise
            except (OSError, WebSocketException) as e:
                if _rejected(e):
                    logger.error("Feed rechazado por el servidor, no se reintenta: %s", e)
                    self._active = False
                    return
                logger.warning("Feed desconectado, reintento en %ss: %s", backoff, e)
            if self._active:
                await asyncio.sleep(backoff)
                backoff = min(self._max_backoff, backoff * 2)

    def close(self):
        if not self._active:
            return
        self._active = False
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is self._loop:
            self._task.cancel()
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._task.cancel)


class WebSocketFeedSource:
    def __init__(self, base_url: str, token: str,
                 on_reconnect: Optional[Callable[[], Awaitable[Any]]] = None,
                 initial_backoff: float = 1, max_backoff: float = 30):
        # http(s):// -> ws(s)://
        if base_url.startswith("http"):
            base_url = "ws" + base_url[len("http"):]
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.on_reconnect = on_reconnect
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff

    def url(self) -> str:
        return f"{self.base_url}/ws/notifications?{urlencode({'token': self.token})}"

    def subscribe(self, user_id: str, handler: Handler) -> WebSocketSubscription:
        return WebSocketSubscription(
            self.url(), user_id, handler,
            on_reconnect=self.on_reconnect,
            initial_backoff=self.initial_backoff,
            max_backoff=self.max_backoff,
        )

    def unsubscribe(self, handle: WebSocketSubscription) -> None:
        handle.close()
