# school_notify/services/notification_handler.py
import asyncio
import logging
from typing import List, Optional, Union

from pydantic import ValidationError

from school_notify.exceptions import NotFound
from school_notify.infra.store import NotificationStore
from school_notify.models.notification import Notification, NotificationType
from school_notify.models.queue_message import QueueMessage
from school_notify.services.change_feed import ChangeFeed

logger = logging.getLogger(__name__)

# textos por defecto cuando el mensaje no trae title/message
DEFAULT_TEXTS = {
    NotificationType.GRADE_INPUT: ("Nilai Baru", "Nilai baru telah diinput."),
    NotificationType.ATTENDANCE_INPUT: ("Absensi Dicatat", "Absensi Anda telah dicatat."),
    NotificationType.ASSIGNMENT_CREATED: ("Tugas Baru", "Ada tugas baru untuk Anda."),
    NotificationType.ASSIGNMENT_SUBMITTED: ("Tugas Dikumpulkan", "Sebuah tugas telah dikumpulkan."),
    NotificationType.ASSIGNMENT_GRADED: ("Tugas Dinilai", "Tugas Anda telah dinilai."),
    NotificationType.MATERIAL_UPLOADED: ("Materi Baru", "Materi baru telah diunggah."),
    NotificationType.USER_CREATED: ("Akun Baru Dibuat", "Selamat datang di sistem sekolah."),
    NotificationType.PASSWORD_RESET: ("Password Direset", "Password akun Anda telah direset."),
    NotificationType.SYSTEM: ("Notifikasi", "Anda memiliki notifikasi baru."),
}


def resolve_type(value: str) -> NotificationType:
    try:
        return NotificationType(value)
    except ValueError:
        return NotificationType.SYSTEM


def build_notification(msg: QueueMessage, notification_id: Optional[str] = None) -> Notification:
    noti_type = resolve_type(msg.type)
    title, message = DEFAULT_TEXTS[noti_type]
    return Notification.new(
        user_id=msg.userId,
        type=noti_type,
        title=msg.title or title,
        message=msg.message or message,
        reference_id=msg.referenceId,
        id=notification_id,
    )


async def process_notification(msg: Union[dict, QueueMessage], store: NotificationStore,
                               feed: ChangeFeed,
                               message_id: Optional[str] = None,
                               email=None) -> Optional[Notification]:
    """
    Procesa un mensaje de notificación (cola o dev-send).
    Estructura esperada:
      {
        "type": "grade_input",
        "userId": "123",
        "title": "...",          # opcional
        "message": "...",        # opcional
        "referenceId": "..."     # opcional
      }
    1. Persiste en el store.
    2. Recién después publica en el feed (nunca antes de que se pueda leer).
    3. Si es nueva y hay `email` (EmailNotifier), le escribe al dueño.
    Si message_id ya existe (mensaje re-entregado) se re-publica la fila guardada:
    la entrega es at-least-once y el cliente deduplica por id.
    Si el dueño ya la borró no se revive ni se publica: devuelve None.
    """
    if isinstance(msg, dict):
        try:
            msg = QueueMessage.model_validate(msg)
        except ValidationError as e:
            # si no hay user no hay a quién notificar
            logger.warning("Mensaje de notificación inválido, se descarta: %s", e)
            return None

    notification = build_notification(msg, notification_id=message_id)

    created = await asyncio.to_thread(store.insert, notification)
    if not created:
        try:
            notification = await asyncio.to_thread(store.get, notification.userId, notification.id)
        except NotFound:
            logger.info("Notificación %s borrada por su dueño, se ignora la re-entrega",
                        notification.id)
            return None
        logger.info("Notificación %s ya existía (re-entrega)", notification.id)

    delivered = feed.publish(notification)
    logger.info(
        "Notificación %s (%s) para user %s, %d suscripciones",
        notification.id, notification.type, notification.userId, delivered,
    )
    if created and email is not None:
        await email.notify(notification)
    return notification


class LocalNotificationSender:
    """Entrega los mensajes directo al ingest, sin pasar por la cola."""

    def __init__(self, store: NotificationStore, feed: ChangeFeed, email=None):
        self.store = store
        self.feed = feed
        self.email = email

    async def send_many(self, messages: List[QueueMessage]) -> int:
        for msg in messages:
            await process_notification(msg, self.store, self.feed, email=self.email)
        return len(messages)
