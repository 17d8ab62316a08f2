# school_notify/api/notifications.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from school_notify import config
from school_notify.api.deps import get_email, get_feed, get_service, get_store
from school_notify.infra.servicebus_consumer import consumer_status
from school_notify.security.jwt_utils import get_current_user
from school_notify.services.notification_handler import process_notification
from school_notify.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _page(service: NotificationService, caller_id: str, user_id: str, page: int,
          limit: int, is_read: Optional[bool]) -> dict:
    return service.list(caller_id, user_id, page, limit, is_read=is_read).model_dump(mode="json")


@router.get("")
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    is_read: Optional[bool] = Query(None, alias="isRead"),
    current: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_service),
):
    """Notificaciones del usuario del JWT, más nuevas primero."""
    return _page(service, current["sub"], current["sub"], page, limit, is_read)


@router.get("/unread-count")
def unread_count(
    current: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_service),
):
    return {"unreadCount": service.unread_count(current["sub"], current["sub"])}


@router.get("/user/{user_id}")
def list_user_notifications(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    is_read: Optional[bool] = Query(None, alias="isRead"),
    current: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_service),
):
    """
    Devuelve las notificaciones de un usuario.
    Solo puede ver sus propias notificaciones (comparando sub del JWT).
    """
    return _page(service, current["sub"], user_id, page, limit, is_read)


@router.put("/read-all")
def mark_all_as_read(
    current: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_service),
):
    updated = service.mark_all_read(current["sub"], current["sub"])
    return {"success": True, "updated": updated}


@router.put("/{notification_id}/read")
def mark_notification_as_read(
    notification_id: str,
    current: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_service),
):
    """Marca una notificación como leída (idempotente). 404 si no es del usuario."""
    notification = service.mark_read(current["sub"], current["sub"], notification_id)
    return {"success": True, "data": notification.model_dump(mode="json")}


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: str,
    current: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_service),
):
    service.delete(current["sub"], current["sub"], notification_id)
    return {"success": True, "message": "Notification deleted"}


# =========================
# DEV-ONLY: /notifications/dev-send
# Crea una notificación por el mismo camino que la cola (store + feed).
# Si no se envía userId en el body, usa el del token (sub).
# =========================

class DevSendIn(BaseModel):
    type: str
    userId: Optional[str] = None
    title: Optional[str] = None
    message: Optional[str] = None
    referenceId: Optional[str] = None


@router.post("/dev-send", status_code=201)
async def dev_send(body: DevSendIn, request: Request, current: dict = Depends(get_current_user)):
    if not config.ENABLE_DEV_ENDPOINTS:
        raise HTTPException(status_code=404, detail="Not Found")

    msg = body.model_dump()
    msg["userId"] = body.userId or current["sub"]
    notification = await process_notification(
        msg, get_store(request), get_feed(request), email=get_email(request)
    )
    return {"success": True, "data": notification.model_dump(mode="json")}


@router.get("/debug/consumer-status")
def debug_consumer_status():
    """
    Estado del consumer de Service Bus:
    startedAt, lastMessageAt, lastError, queue, hasConnectionString
    """
    return consumer_status()
