# school_notify/api/errors.py
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from school_notify.exceptions import NotificationError, Unauthorized

logger = logging.getLogger(__name__)


def error_body(code: str, message: str) -> dict:
    return {"success": False, "error": {"code": code, "message": message}}


async def notification_error_handler(request: Request, exc: NotificationError):
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message),
        headers=headers,
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception en %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=error_body("SERVER_ERROR", "Internal server error"))


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(NotificationError, notification_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
