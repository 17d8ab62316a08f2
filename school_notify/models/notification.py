# school_notify/models/notification.py
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class NotificationType(str, Enum):
    GRADE_INPUT = "grade_input"
    ATTENDANCE_INPUT = "attendance_input"
    ASSIGNMENT_CREATED = "assignment_created"
    ASSIGNMENT_SUBMITTED = "assignment_submitted"
    ASSIGNMENT_GRADED = "assignment_graded"
    MATERIAL_UPLOADED = "material_uploaded"
    USER_CREATED = "user_created"
    PASSWORD_RESET = "password_reset"
    SYSTEM = "system"


class Notification(BaseModel):
    """
    Una alerta para un único usuario.
    Inmutable salvo isRead, que solo pasa de False a True
    (se cambia con model_copy, nunca in-place).
    """
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    id: str
    userId: str
    type: NotificationType
    title: str
    message: str
    referenceId: Optional[str] = None
    isRead: bool = False
    createdAt: datetime

    @classmethod
    def new(cls, user_id: str, type: str, title: str, message: str,
            reference_id: Optional[str] = None, id: Optional[str] = None) -> "Notification":
        return cls(
            id=id or str(uuid.uuid4()),
            userId=user_id,
            type=type,
            title=title,
            message=message,
            referenceId=reference_id,
            isRead=False,
            createdAt=datetime.now(timezone.utc),
        )

    def as_read(self) -> "Notification":
        if self.isRead:
            return self
        return self.model_copy(update={"isRead": True})


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class NotificationPage(BaseModel):
    success: bool = True
    data: List[Notification]
    pagination: Pagination
