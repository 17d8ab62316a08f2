# school_notify/client/events.py
import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)


class EventEmitter:
    """
    Eventos del estado de notificaciones hacia la capa de presentación.
    Un listener que falla se loguea y no corta a los demás ni al estado.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}

    def on(self, event: str, listener: Callable) -> Callable:
        self._listeners.setdefault(event, []).append(listener)
        return listener

    def off(self, event: str, listener: Callable):
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: str, *args):
        for listener in list(self._listeners.get(event, ())):
            try:
                listener(*args)
            except Exception:
                logger.exception("Listener de '%s' falló", event)
