# school_notify/models/recipient.py
from typing import Optional

from pydantic import BaseModel


class Recipient(BaseModel):
    """Contacto de un usuario y su preferencia de e-mail."""
    userId: str
    email: Optional[str] = None
    fullName: str = ""
    # user_settings.email_notifications; si no se configuró, se envía
    emailNotifications: bool = True
