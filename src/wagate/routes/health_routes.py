"""
Health check endpoint.
"""
import time
from datetime import datetime

from starlette.requests import Request
from starlette.responses import JSONResponse

from wagate.logger import get_logger

logger = get_logger(__name__)
start_time = time.time()


async def health_check(request: Request) -> JSONResponse:
    """
    Basic health check.

    Always 200 while the process is serving; the body reports whether the
    session can currently send.
    """
    controller = request.app.state.controller
    hub = request.app.state.hub

    body = {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "uptime_seconds": int(time.time() - start_time),
        "session_state": controller.state.value,
        "ready": controller.is_ready(),
        "observers": hub.observer_count,
    }

    try:
        body["messages_logged"] = request.app.state.database.count_message_logs()
    except Exception as e:
        logger.error(f"Health check could not read the audit log: {e}")
        body["messages_logged"] = None

    return JSONResponse(body)
