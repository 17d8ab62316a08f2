# school_notify/client/presentation.py
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import quote

from school_notify.client.state import NotificationClientState
from school_notify.models.notification import Notification, NotificationType

ROUTES = {
    NotificationType.GRADE_INPUT.value: "/academic/grades?student={ref}",
    NotificationType.ATTENDANCE_INPUT.value: "/academic/attendance?date={ref}",
    NotificationType.ASSIGNMENT_CREATED.value: "/academic/assignments/{ref}",
}

ALERT_SECONDS = 5.0


def route_for(type: str, reference_id: Optional[str]) -> Optional[str]:
    """Ruta de click-through. Tipo desconocido o sin referenceId => None."""
    if reference_id is None:
        return None
    template = ROUTES.get(getattr(type, "value", type))
    if template is None:
        return None
    return template.format(ref=quote(str(reference_id), safe=""))


@dataclass(frozen=True)
class Alert:
    title: str
    message: str
    kind: str = "info"
    duration: float = ALERT_SECONDS


def alert_for(notification: Notification) -> Alert:
    return Alert(title=notification.title, message=notification.message)


class PresentationAdapter:
    """
    Traduce los eventos del estado en alertas efímeras y navegación.
    show_alert(Alert) y navigate(route) los pone la UI.
    """

    def __init__(self, state: NotificationClientState,
                 show_alert: Callable[[Alert], None],
                 navigate: Callable[[str], None]):
        self.state = state
        self.show_alert = show_alert
        self.navigate = navigate

        events = state.events
        events.on("notification_received", self._on_received)
        events.on("all_marked_read", self._on_all_read)
        events.on("notification_deleted", self._on_deleted)
        events.on("error", self._on_error)

    def _on_received(self, notification: Notification):
        self.show_alert(alert_for(notification))

    def _on_all_read(self, updated: int):
        self.show_alert(Alert("Notifikasi", "Semua notifikasi ditandai sudah dibaca", kind="success"))

    def _on_deleted(self, notification_id: str):
        self.show_alert(Alert("Notifikasi", "Notifikasi dihapus", kind="success"))

    def _on_error(self, action: str, error: Exception):
        self.show_alert(Alert("Error", str(error), kind="error"))

    async def open(self, notification: Notification) -> Optional[str]:
        """Click en una notificación: la marca leída si hacía falta y navega."""
        if not notification.isRead:
            await self.state.mark_as_read(notification.id)
        route = route_for(notification.type, notification.referenceId)
        if route is not None:
            self.navigate(route)
        return route
