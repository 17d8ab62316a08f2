# school_notify/models/queue_message.py
from typing import Any, Optional

from pydantic import BaseModel, field_validator


class QueueMessage(BaseModel):
    """Mensaje que publican las acciones de negocio en la cola."""
    type: str
    userId: str
    title: Optional[str] = None
    message: Optional[str] = None
    referenceId: Optional[str] = None

    @field_validator("userId", "referenceId", mode="before")
    @classmethod
    def _to_str(cls, value: Any):
        if value is None:
            return None
        return str(value)
