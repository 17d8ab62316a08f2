# school_notify/main.py
import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from school_notify import config
from school_notify.api.errors import register_error_handlers
from school_notify.api.notifications import router as notifications_router
from school_notify.api.websocket import router as ws_router
from school_notify.infra.servicebus_consumer import consume_notifications
from school_notify.infra.store import NotificationStore, create_store
from school_notify.logging_config import configure_logging
from school_notify.services.change_feed import ChangeFeed
from school_notify.services.email_service import EmailNotifier, create_email_notifier

logger = logging.getLogger(__name__)


def create_app(store: NotificationStore = None, feed: ChangeFeed = None,
               start_consumer: bool = True, email: EmailNotifier = None) -> FastAPI:
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        stop = asyncio.Event()
        consumer = None
        if start_consumer and config.SB_CONN_STR:
            # lanzar el consumer de Service Bus en background
            consumer = asyncio.create_task(
                consume_notifications(app.state.store, app.state.feed, stop, app.state.email)
            )
        try:
            yield
        finally:
            stop.set()
            app.state.feed.close_all()
            if consumer is not None:
                consumer.cancel()
                with suppress(asyncio.CancelledError):
                    await consumer

    app = FastAPI(title="School Notification Service", lifespan=lifespan)
    app.state.store = store if store is not None else create_store()
    app.state.feed = feed if feed is not None else ChangeFeed()
    # sin SMTP_HOST el notifier no envía nada
    app.state.email = email if email is not None else create_email_notifier()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    app.include_router(notifications_router)
    app.include_router(ws_router)

    @app.get("/health")
    def health():
        return {"status": "ok", "store": type(app.state.store).__name__}

    logger.info("Store de notificaciones: %s", type(app.state.store).__name__)
    return app


app = create_app()
