"""
Routes for the messaging session.

Provides:
- WebSocket endpoint for live observers (/ws)
- REST endpoints for reading the session and for operator disconnect/reconnect
"""

import asyncio

from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.websockets import WebSocket, WebSocketDisconnect

from wagate.broadcast.hub import QueueObserver
from wagate.logger import get_logger
from wagate.models import ObserverRequest, SessionInfo

logger = get_logger(__name__)

REQUEST_DISCONNECT = "request_disconnect"
REQUEST_RECONNECT = "request_reconnect"


def _session_info(controller) -> dict:
    identity = controller.identity
    resp = SessionInfo(
        state=controller.state,
        ready=controller.ready,
        identity=identity.to_dict() if identity else None,
    )
    return resp.model_dump(mode="json")


async def _pump(websocket: WebSocket, observer: QueueObserver) -> None:
    """Forward queued frames to the socket, in order, until it closes."""
    while True:
        frame = await observer.next_frame()
        await websocket.send_json(frame.model_dump(mode="json"))


async def observer_websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for status observers.

    On connect the observer receives status, identity and challenge (when
    present) and the recent history, then every live update. It may send
    {"type": "request_disconnect"} or {"type": "request_reconnect"}.
    """
    hub = websocket.app.state.hub
    controller = websocket.app.state.controller

    await websocket.accept()
    observer = QueueObserver()
    await hub.attach(observer)
    sender = asyncio.create_task(_pump(websocket, observer))

    try:
        while True:
            data = await websocket.receive_json()
            try:
                request = ObserverRequest(**data)
            except (TypeError, ValidationError):
                logger.warning(f"Malformed observer request: {data!r}")
                continue

            if request.type == REQUEST_DISCONNECT:
                await controller.request_disconnect()
            elif request.type == REQUEST_RECONNECT:
                await controller.request_reconnect()
            else:
                logger.warning(f"Unknown observer request type '{request.type}'")

    except WebSocketDisconnect:
        logger.info(f"Observer WebSocket disconnected: {observer.observer_id}")
    except Exception as e:
        logger.error(f"Observer WebSocket error: {e}")
    finally:
        hub.detach(observer)
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Observer sender stopped with error: {e}")


async def get_session(request: Request) -> JSONResponse:
    """GET /session — Current state, ready flag and identity."""
    return JSONResponse(_session_info(request.app.state.controller))


async def disconnect_session(request: Request) -> JSONResponse:
    """POST /session/disconnect — Log the session out; no auto-reconnect."""
    controller = request.app.state.controller
    await controller.request_disconnect()
    return JSONResponse(_session_info(controller))


async def reconnect_session(request: Request) -> JSONResponse:
    """POST /session/reconnect — Start a new session if none exists."""
    controller = request.app.state.controller
    await controller.request_reconnect()
    return JSONResponse(_session_info(controller))
