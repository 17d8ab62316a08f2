# school_notify/api/deps.py
from fastapi import Request

from school_notify.infra.store import NotificationStore
from school_notify.services.change_feed import ChangeFeed
from school_notify.services.email_service import EmailNotifier
from school_notify.services.notification_service import NotificationService


def get_store(request: Request) -> NotificationStore:
    return request.app.state.store


def get_feed(request: Request) -> ChangeFeed:
    return request.app.state.feed


def get_service(request: Request) -> NotificationService:
    return NotificationService(get_store(request))


def get_email(request: Request) -> EmailNotifier:
    return request.app.state.email
