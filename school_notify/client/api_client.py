# school_notify/client/api_client.py
import asyncio
import logging
from typing import Any, List, Optional, Tuple

import requests

from school_notify.exceptions import NotFound, NotificationError, TransientIO, Unauthorized
from school_notify.models.notification import Notification, Pagination

logger = logging.getLogger(__name__)


class NotificationApiClient:
    """
    Cliente REST del servicio de notificaciones.
    requests es bloqueante: cada llamada corre en un hilo (asyncio.to_thread)
    para no frenar el event loop del cliente.
    """

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.http = session or requests.Session()

    def authenticate(self, token: str):
        self.token = token

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return error.get("message", response.text)
        return body.get("detail", response.text) if isinstance(body, dict) else response.text

    def _request(self, method: str, path: str, params: dict = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(
                method, url, params=params, headers=self._headers(), timeout=self.timeout
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.warning("%s %s falló: %s", method, url, e)
            raise TransientIO(str(e)) from e

        if response.status_code in (401, 403):
            raise Unauthorized(self._error_message(response))
        if response.status_code == 404:
            raise NotFound(self._error_message(response))
        if response.status_code >= 500:
            logger.error("%s %s -> %s", method, url, response.status_code)
            raise TransientIO(self._error_message(response))
        if response.status_code >= 400:
            raise NotificationError(self._error_message(response))
        return response.json()

    async def _call(self, method: str, path: str, params: dict = None) -> Any:
        return await asyncio.to_thread(self._request, method, path, params)

    async def list(self, page: int = 1, limit: int = 20,
                   is_read: Optional[bool] = None) -> Tuple[List[Notification], Pagination]:
        params = {"page": page, "limit": limit}
        if is_read is not None:
            params["isRead"] = "true" if is_read else "false"
        body = await self._call("GET", "/notifications", params)
        items = [Notification.model_validate(n) for n in body["data"]]
        return items, Pagination.model_validate(body["pagination"])

    async def unread_count(self) -> int:
        body = await self._call("GET", "/notifications/unread-count")
        return int(body["unreadCount"])

    async def mark_read(self, notification_id: str) -> Notification:
        body = await self._call("PUT", f"/notifications/{notification_id}/read")
        return Notification.model_validate(body["data"])

    async def mark_all_read(self) -> int:
        body = await self._call("PUT", "/notifications/read-all")
        return int(body.get("updated", 0))

    async def delete(self, notification_id: str) -> None:
        await self._call("DELETE", f"/notifications/{notification_id}")
