# school_notify/infra/recipients.py
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

from azure.core.exceptions import AzureError, ResourceNotFoundError

from school_notify import config
from school_notify.exceptions import TransientIO
from school_notify.infra.table_client import get_table_client
from school_notify.models.recipient import Recipient

logger = logging.getLogger(__name__)

# una sola entidad por usuario dentro de su partición
PROFILE_ROW = "profile"


class RecipientDirectory(ABC):
    """A quién escribirle: e-mail, nombre y si quiere recibir e-mails."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[Recipient]:
        """None si el usuario no tiene contacto registrado."""


class MemoryRecipientDirectory(RecipientDirectory):
    def __init__(self):
        self._lock = threading.Lock()
        self._recipients: Dict[str, Recipient] = {}

    def put(self, recipient: Recipient):
        with self._lock:
            self._recipients[recipient.userId] = recipient

    def get(self, user_id: str) -> Optional[Recipient]:
        with self._lock:
            return self._recipients.get(user_id)


class TableRecipientDirectory(RecipientDirectory):
    """
    Contactos en Azure Table Storage (los escribe el sistema escolar).
    PartitionKey = userId, RowKey = "profile".
    """

    def __init__(self, table_client=None):
        self._client = table_client

    @property
    def client(self):
        if self._client is None:
            self._client = get_table_client(table_name=config.RECIPIENTS_TABLE_NAME)
        return self._client

    def get(self, user_id: str) -> Optional[Recipient]:
        try:
            entity = self.client.get_entity(partition_key=user_id, row_key=PROFILE_ROW)
        except ResourceNotFoundError:
            return None
        except AzureError as e:
            logger.error("Table Storage falló al leer el contacto de %s: %s", user_id, e)
            raise TransientIO(f"No se pudo leer el contacto: {e}") from e
        return Recipient(
            userId=entity["PartitionKey"],
            email=entity.get("email"),
            fullName=entity.get("fullName", ""),
            emailNotifications=entity.get("emailNotifications", True) is not False,
        )


def create_recipient_directory(kind: str = None) -> RecipientDirectory:
    kind = (kind or config.NOTIFICATION_STORE).lower()
    if kind == "table":
        return TableRecipientDirectory()
    return MemoryRecipientDirectory()
