# school_notify/infra/servicebus_consumer.py
import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from azure.servicebus import ServiceBusMessage, TransportType
from azure.servicebus.aio import ServiceBusClient
from azure.servicebus.exceptions import MessageSizeExceededError

from school_notify import config
from school_notify.infra.store import NotificationStore
from school_notify.models.queue_message import QueueMessage
from school_notify.services.change_feed import ChangeFeed
from school_notify.services.notification_handler import process_notification

logger = logging.getLogger(__name__)

INITIAL_BACKOFF = 1
MAX_BACKOFF = 30

_status = {
    "startedAt": None,
    "lastMessageAt": None,
    "lastError": None,
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def consumer_status() -> dict:
    return {
        **_status,
        "queue": config.SB_QUEUE,
        "hasConnectionString": bool(config.SB_CONN_STR),
    }


def decode_body(msg) -> dict:
    # el body llega como secuencia de bytes
    body_bytes = b"".join(part for part in msg.body)
    return json.loads(body_bytes.decode("utf-8"))


async def handle_message(msg, receiver, store: NotificationStore, feed: ChangeFeed,
                         email=None):
    """
    Procesa un mensaje y lo completa solo si salió bien.
    El message_id se usa como id de la notificación: una re-entrega no duplica la fila.
    """
    try:
        payload = decode_body(msg)
        logger.debug("Mensaje recibido: %s", payload)
        await process_notification(payload, store, feed, message_id=msg.message_id, email=email)
        await receiver.complete_message(msg)
        _status["lastMessageAt"] = _now()
    except Exception as e:
        # sin complete => reintenta (o DLQ por MaxDeliveryCount)
        _status["lastError"] = f"{type(e).__name__}: {e}"
        logger.exception("Error procesando mensaje %s", getattr(msg, "message_id", None))


async def consume_notifications(store: NotificationStore, feed: ChangeFeed,
                                stop: Optional[asyncio.Event] = None, email=None):
    """
    Consumer asíncrono de Azure Service Bus:
      - AMQP sobre WebSocket (443) para funcionar en App Service.
      - Lee mensajes de la cola, persiste y publica en el feed.
      - Reconecta con backoff exponencial (1s -> 30s) si se cae.
    """
    if not config.SB_CONN_STR:
        logger.warning("Falta AZURE_SERVICE_BUS_CONNECTION_STRING. No se consumirá la cola.")
        return

    stop = stop or asyncio.Event()
    _status["startedAt"] = _now()
    backoff = INITIAL_BACKOFF

    while not stop.is_set():
        try:
            logger.info("Conectando a Service Bus (cola: %s) con WebSockets 443", config.SB_QUEUE)
            async with ServiceBusClient.from_connection_string(
                config.SB_CONN_STR,
                transport_type=TransportType.AmqpOverWebsocket,
            ) as sb_client:
                receiver = sb_client.get_queue_receiver(queue_name=config.SB_QUEUE)
                async with receiver:
                    logger.info("Escuchando cola: %s", config.SB_QUEUE)
                    backoff = INITIAL_BACKOFF
                    while not stop.is_set():
                        messages = await receiver.receive_messages(
                            max_message_count=10,
                            max_wait_time=10,
                        )
                        if not messages:
                            await asyncio.sleep(0.5)
                            continue
                        for msg in messages:
                            await handle_message(msg, receiver, store, feed, email)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            _status["lastError"] = f"{type(e).__name__}: {e}"
            logger.warning("Error de conexión con Service Bus, reintento en %ss: %s", backoff, e)
            await asyncio.sleep(backoff)
            backoff = min(MAX_BACKOFF, backoff * 2)


def to_service_bus_message(msg: QueueMessage) -> ServiceBusMessage:
    # message_id único: el consumer lo usa como id de la notificación
    return ServiceBusMessage(
        msg.model_dump_json(),
        message_id=str(uuid.uuid4()),
        content_type="application/json",
    )


class ServiceBusNotificationSender:
    """
    Lado productor: las acciones de negocio encolan notificaciones.
    Se usa como sender de NotificationTriggers. Abre una sola conexión
    (perezosa) y manda los mensajes en lotes; cerrar con close() o async with.
    """

    def __init__(self, conn_str: str = None, queue_name: str = None):
        self.conn_str = conn_str or config.SB_CONN_STR
        self.queue_name = queue_name or config.SB_QUEUE
        if not self.conn_str:
            raise RuntimeError("AZURE_SERVICE_BUS_CONNECTION_STRING no está configurada en .env")
        self._client = None
        self._sender = None

    def _get_sender(self):
        if self._sender is None:
            self._client = ServiceBusClient.from_connection_string(
                self.conn_str,
                transport_type=TransportType.AmqpOverWebsocket,
            )
            self._sender = self._client.get_queue_sender(queue_name=self.queue_name)
        return self._sender

    async def send(self, msg: QueueMessage):
        await self.send_many([msg])

    async def send_many(self, messages: Iterable[QueueMessage]) -> int:
        """Manda todo en la menor cantidad de lotes; devuelve cuántos mensajes salieron."""
        sender = self._get_sender()
        batch = await sender.create_message_batch()
        count = 0
        for msg in messages:
            sb_message = to_service_bus_message(msg)
            try:
                batch.add_message(sb_message)
            except MessageSizeExceededError:
                if len(batch) == 0:
                    # no entra ni solo en un lote vacío
                    raise
                await sender.send_messages(batch)
                batch = await sender.create_message_batch()
                batch.add_message(sb_message)
            count += 1
        if len(batch):
            await sender.send_messages(batch)
        logger.debug("Encolados %d mensajes en %s", count, self.queue_name)
        return count

    async def close(self):
        if self._sender is not None:
            await self._sender.close()
            await self._client.close()
            self._sender = None
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()
