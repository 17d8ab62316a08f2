# school_notify/exceptions.py


class NotificationError(Exception):
    """Error base del subsistema de notificaciones."""

    status_code = 500
    code = "SERVER_ERROR"
    default_message = "Error interno"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(NotificationError):
    """No autenticado, o el usuario no es dueño del recurso."""

    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class NotFound(NotificationError):
    """La notificación no existe o pertenece a otro usuario."""

    status_code = 404
    code = "NOT_FOUND"
    default_message = "Notification not found"


class TransientIO(NotificationError):
    """Falla de conexión con el store o con el feed."""

    status_code = 503
    code = "TRANSIENT_IO"
    default_message = "Storage temporarily unavailable"
