# school_notify/security/jwt_utils.py
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Header

from school_notify import config
from school_notify.exceptions import Unauthorized


def create_token(user_id: str, expires_in: timedelta = timedelta(hours=24)) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": str(user_id), "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALG)


def decode_token(token: str) -> dict:
    """
    Decodifica y valida el JWT (para WebSocket u otros).
    Lanza Unauthorized si es inválido, expiró o no trae sujeto.
    """
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALG])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.PyJWTError:
        raise Unauthorized("Invalid token")

    # el backend escolar firma con userId; sub es el estándar
    subject = payload.get("sub") or payload.get("userId")
    if not subject:
        raise Unauthorized("Token without subject")
    payload["sub"] = str(subject)
    return payload


def get_current_user(authorization: str = Header(default="")) -> dict:
    """
    Toma el header: Authorization: Bearer <token>
    Lo valida y devuelve el payload.
    """
    if not authorization:
        raise Unauthorized("Missing Authorization header")

    if not authorization.startswith("Bearer "):
        raise Unauthorized("Invalid Authorization header format")

    token = authorization.removeprefix("Bearer ").strip()
    return decode_token(token)
