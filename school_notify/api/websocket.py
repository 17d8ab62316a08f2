# school_notify/api/websocket.py
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from school_notify.exceptions import Unauthorized
from school_notify.models.notification import Notification
from school_notify.security.jwt_utils import decode_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


def feed_frame(notification: Notification) -> dict:
    return {"event": "INSERT", "notification": notification.model_dump(mode="json")}


@router.websocket("/ws/notifications")
async def websocket_notifications(websocket: WebSocket, token: str = Query(...)):
    """
    WebSocket para notificaciones en tiempo real.
    El frontend debe conectarse con:
      ws://localhost:8001/ws/notifications?token=JWT_AQUI
    Solo recibe los INSERT del usuario del token.
    """
    try:
        user_id = decode_token(token)["sub"]
    except Unauthorized:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    async def relay(notification: Notification):
        await websocket.send_json(feed_frame(notification))

    async def overflow():
        # cliente demasiado lento: que reconecte y refresque
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)

    subscription = websocket.app.state.feed.subscribe(user_id, relay, on_overflow=overflow)
    try:
        while True:
            text = await websocket.receive_text()
            if text == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        logger.debug("WebSocket cerrado para user %s", user_id)
    finally:
        subscription.close()
