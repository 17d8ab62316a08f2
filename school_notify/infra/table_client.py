# school_notify/infra/table_client.py
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.data.tables import TableServiceClient, UpdateMode

from school_notify import config
from school_notify.exceptions import NotFound, TransientIO
from school_notify.infra.store import NotificationStore, newest_first, paginate
from school_notify.models.notification import Notification

logger = logging.getLogger(__name__)

# límite de operaciones por transacción (entity group) en Table Storage
MAX_BATCH = 100


def get_table_client(conn_str: str = None, table_name: str = None):
    conn_str = conn_str or config.AZURE_STORAGE_CONNECTION_STRING
    if not conn_str:
        raise RuntimeError("AZURE_STORAGE_CONNECTION_STRING no está configurada en .env")

    service = TableServiceClient.from_connection_string(conn_str=conn_str)
    return service.create_table_if_not_exists(table_name=table_name or config.TABLE_NAME)


def to_entity(n: Notification) -> dict:
    entity = {
        "PartitionKey": n.userId,
        "RowKey": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "read": n.isRead,
        "createdAt": n.createdAt.isoformat(),
    }
    if n.referenceId is not None:
        entity["referenceId"] = n.referenceId
    return entity


def from_entity(entity) -> Notification:
    return Notification(
        id=entity["RowKey"],
        userId=entity["PartitionKey"],
        type=entity.get("type", "system"),
        title=entity.get("title", ""),
        message=entity.get("message", ""),
        referenceId=entity.get("referenceId"),
        # si una entidad vieja no trae 'read', cuenta como NO leída
        isRead=bool(entity.get("read", False)),
        createdAt=datetime.fromisoformat(entity["createdAt"]),
    )


@contextmanager
def _translate_errors(action: str):
    try:
        yield
    except ResourceNotFoundError:
        raise NotFound()
    except AzureError as e:
        logger.error("Table Storage falló en %s: %s", action, e)
        raise TransientIO(f"No se pudo {action}: {e}") from e


class TableNotificationStore(NotificationStore):
    """
    Notificaciones en Azure Table Storage.
    PartitionKey = userId, RowKey = id de la notificación.
    Los borrados dejan una marca en TOMBSTONE_TABLE_NAME para que insert
    no reviva un id que la cola vuelve a entregar.
    """

    def __init__(self, table_client=None, tombstone_client=None):
        self._client = table_client
        self._tombstones = tombstone_client

    @property
    def client(self):
        if self._client is None:
            self._client = get_table_client()
        return self._client

    @property
    def tombstones(self):
        # tabla aparte: PartitionKey = userId, RowKey = id borrado
        if self._tombstones is None:
            self._tombstones = get_table_client(table_name=config.TOMBSTONE_TABLE_NAME)
        return self._tombstones

    def _was_deleted(self, user_id: str, notification_id: str) -> bool:
        try:
            self.tombstones.get_entity(partition_key=user_id, row_key=notification_id)
        except ResourceNotFoundError:
            return False
        return True

    def _query(self, user_id: str, is_read: Optional[bool] = None, select=None):
        query_filter = "PartitionKey eq @pk"
        parameters = {"pk": user_id}
        if is_read is not None:
            query_filter += " and read eq @read"
            parameters["read"] = is_read
        return self.client.query_entities(
            query_filter=query_filter, parameters=parameters, select=select
        )

    def insert(self, notification: Notification) -> bool:
        with _translate_errors("guardar la notificación"):
            if self._was_deleted(notification.userId, notification.id):
                return False
            try:
                self.client.create_entity(entity=to_entity(notification))
            except ResourceExistsError:
                return False
        return True

    def get(self, user_id: str, notification_id: str) -> Notification:
        with _translate_errors("leer la notificación"):
            entity = self.client.get_entity(partition_key=user_id, row_key=notification_id)
        return from_entity(entity)

    def list(self, user_id: str, page: int = 1, page_size: int = 20,
             is_read: Optional[bool] = None) -> Tuple[List[Notification], int]:
        # Table Storage ordena por RowKey (uuid), no por fecha: ordenamos acá
        with _translate_errors("listar notificaciones"):
            rows = [from_entity(e) for e in self._query(user_id, is_read)]
        rows = newest_first(rows)
        return paginate(rows, page, page_size), len(rows)

    def unread_count(self, user_id: str) -> int:
        with _translate_errors("contar no leídas"):
            return sum(1 for _ in self._query(user_id, is_read=False, select=["RowKey"]))

    def mark_read(self, user_id: str, notification_id: str) -> Notification:
        with _translate_errors("marcar como leída"):
            entity = self.client.get_entity(partition_key=user_id, row_key=notification_id)
            if not entity.get("read", False):
                entity["read"] = True
                self.client.update_entity(entity=entity, mode=UpdateMode.MERGE)
        return from_entity(entity)

    def mark_all_read(self, user_id: str) -> int:
        with _translate_errors("marcar todas como leídas"):
            unread = list(self._query(user_id, is_read=False, select=["PartitionKey", "RowKey"]))
            # todas comparten PartitionKey => cada lote es una transacción atómica
            for start in range(0, len(unread), MAX_BATCH):
                operations = [
                    ("update",
                     {"PartitionKey": e["PartitionKey"], "RowKey": e["RowKey"], "read": True},
                     {"mode": UpdateMode.MERGE})
                    for e in unread[start:start + MAX_BATCH]
                ]
                self.client.submit_transaction(operations)
        return len(unread)

    def delete(self, user_id: str, notification_id: str) -> None:
        with _translate_errors("borrar la notificación"):
            # delete_entity no falla si no existe: verificamos antes
            self.client.get_entity(partition_key=user_id, row_key=notification_id)
            self.tombstones.upsert_entity(entity={
                "PartitionKey": user_id,
                "RowKey": notification_id,
                "deletedAt": datetime.now(timezone.utc).isoformat(),
            })
            self.client.delete_entity(partition_key=user_id, row_key=notification_id)
