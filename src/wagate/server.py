"""
Starlette-based web server for wagate.

This server provides the following endpoints:
- /send-message: Send a message; every attempt is written to the audit log
- /messages: Recent audit log entries
- /session: Session state, plus operator disconnect/reconnect
- /ws: Live status, pairing challenge and history feed for observers
- /health: Liveness and session summary

The session controller, broadcast hub, dispatcher and audit database live on
``app.state`` and are created on startup.
"""

import functools
import os
import sys
from contextlib import asynccontextmanager
from typing import Optional

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.routing import Route, WebSocketRoute

from wagate.broadcast.hub import StatusHub
from wagate.config import CONFIG, Config
from wagate.core.dispatcher import MessageDispatcher
from wagate.database import AuditLogDatabase, get_database
from wagate.logger import get_logger, setup_logging
from wagate.routes.health_routes import health_check
from wagate.routes.message_routes import list_messages, send_message
from wagate.routes.session_routes import (
    disconnect_session,
    get_session,
    observer_websocket_endpoint,
    reconnect_session,
)
from wagate.session.controller import SessionController, TransportFactory
from wagate.transports.bridge import BridgeTransport

if "--debug" in sys.argv:
    os.environ["LOG_LEVEL"] = "DEBUG"

log_level = os.getenv("LOG_LEVEL", "INFO")
setup_logging(level=log_level, log_file=os.getenv("LOG_FILE"))

logger = get_logger(__name__)


def create_app(
    config: Optional[Config] = None,
    transport_factory: Optional[TransportFactory] = None,
    database: Optional[AuditLogDatabase] = None,
) -> Starlette:
    """
    Build the application.

    Args:
        config: Settings; defaults to the environment-derived CONFIG.
        transport_factory: Builds messaging transports; defaults to the
            WebSocket bridge at ``config.bridge_url``.
        database: Audit store; defaults to ``get_database()``.
    """
    config = config or CONFIG
    if transport_factory is None:
        transport_factory = functools.partial(
            BridgeTransport,
            config.bridge_url,
            send_timeout=config.bridge_timeout,
            init_timeout=config.bridge_init_timeout,
        )

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info("Application startup - initializing services")

        db = database or get_database()
        hub = StatusHub(db.alist_recent_message_logs, history_limit=config.history_limit)
        controller = SessionController(
            transport_factory, hub, reconnect_delay=config.reconnect_delay
        )
        dispatcher = MessageDispatcher(
            controller, db, hub, address_suffix=config.address_suffix
        )

        app.state.config = config
        app.state.database = db
        app.state.hub = hub
        app.state.controller = controller
        app.state.dispatcher = dispatcher

        await controller.start()
        try:
            yield
        finally:
            logger.info("Application shutdown - cleaning up services")
            await controller.stop()

    return Starlette(
        debug=False,
        routes=[
            Route("/send-message", send_message, methods=["POST"]),
            Route("/messages", list_messages, methods=["GET"]),
            Route("/session", get_session, methods=["GET"]),
            Route("/session/disconnect", disconnect_session, methods=["POST"]),
            Route("/session/reconnect", reconnect_session, methods=["POST"]),
            Route("/health", health_check, methods=["GET"]),
            WebSocketRoute("/ws", observer_websocket_endpoint),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=config.cors_origins,
                allow_methods=["*"],
                allow_headers=["*"],
            )
        ],
        lifespan=lifespan,
    )


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting wagate server on http://{CONFIG.host}:{CONFIG.port}")
    uvicorn.run(
        app,
        host=CONFIG.host,
        port=CONFIG.port,
        log_level=log_level.lower(),
        ws="wsproto",
    )
