# school_notify/config.py
import os

from dotenv import load_dotenv

# cargar variables de entorno del .env antes de leerlas
load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# store backend: "memory" para desarrollo local, "table" para Azure Table Storage
NOTIFICATION_STORE = os.getenv("NOTIFICATION_STORE", "memory")

TABLE_NAME = os.getenv("TABLE_NAME", "notifications")
AZURE_STORAGE_CONNECTION_STRING = os.getenv("AZURE_STORAGE_CONNECTION_STRING")

SB_CONN_STR = os.getenv("AZURE_SERVICE_BUS_CONNECTION_STRING")
SB_QUEUE = os.getenv("AZURE_SERVICE_BUS_QUEUE_NAME", "notifications-queue")

JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production-0123456789")
JWT_ALG = os.getenv("JWT_ALG", "HS256")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ENABLE_DEV_ENDPOINTS = _flag("ENABLE_DEV_ENDPOINTS")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

# ids borrados por su dueño: una re-entrega de la cola no los vuelve a crear
TOMBSTONE_TABLE_NAME = os.getenv("TOMBSTONE_TABLE_NAME", "deletednotifications")

# eventos en cola por suscripción del feed; si se llena se corta la suscripción
FEED_QUEUE_SIZE = int(os.getenv("FEED_QUEUE_SIZE", "1000"))

# e-mail por notificación: sin SMTP_HOST no se envía nada
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
SMTP_USE_TLS = _flag("SMTP_USE_TLS", "true")
SMTP_FROM = os.getenv("SMTP_FROM", "noreply@sekolah.local")
SCHOOL_NAME = os.getenv("SCHOOL_NAME", "Sistem Informasi Sekolah")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")
# contacto y preferencias de e-mail de cada usuario (los sincroniza el sistema escolar)
RECIPIENTS_TABLE_NAME = os.getenv("RECIPIENTS_TABLE_NAME", "recipients")
