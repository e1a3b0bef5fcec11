"""
WebSocket bridge transport.

The messaging web client itself runs in a companion process (a headless
browser driving the web app). This transport connects to that process and
exchanges JSON frames with it.

Protocol:
    Server -> Bridge:
        {"type": "initialize", "options": {...}}
        {"type": "send", "request_id": "uuid", "to": "628123@c.us", "body": "hi"}
        {"type": "destroy"}

    Bridge -> Server:
        {"type": "initialized"} | {"type": "init_error", "error": "..."}
        {"type": "qr", "qr": "<pairing code>"}
        {"type": "authenticated"}
        {"type": "ready", "info": {"wid": "628123", "pushname": "...", "platform": "android"}}
        {"type": "disconnected", "reason": "LOGOUT"}
        {"type": "result", "request_id": "uuid", "success": true, "error": null}
"""

import asyncio
import json
import uuid
from typing import Any, Mapping, Optional

import websockets
from pydantic import ValidationError

from wagate.errors import BridgeError
from wagate.logger import get_logger
from wagate.models import (
    BridgeCommand,
    BridgeFrame,
    BridgeInfo,
    BridgeResultMessage,
    BridgeSendMessage,
)
from wagate.session.events import Authenticated, ChallengeIssued, Disconnected, Ready
from wagate.transports.base import MessagingTransport

logger = get_logger(__name__)

DEFAULT_SEND_TIMEOUT = 30.0
DEFAULT_INIT_TIMEOUT = 120.0


class BridgeTransport(MessagingTransport):
    """Messaging transport backed by a bridge process over WebSocket."""

    def __init__(
        self,
        url: str,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
        init_timeout: float = DEFAULT_INIT_TIMEOUT,
        options: Optional[dict[str, Any]] = None,
    ):
        super().__init__("bridge")
        self.url = url
        self.send_timeout = send_timeout
        self.init_timeout = init_timeout
        self.options = options or {}

        self._ws = None
        self._reader: Optional[asyncio.Task] = None
        self._connected = False
        self._closing = False
        self._info: Optional[BridgeInfo] = None
        self._init_future: Optional[asyncio.Future] = None
        self._pending: dict[str, asyncio.Future] = {}

    @property
    def identity(self) -> Optional[Mapping[str, Any]]:
        if self._info is None:
            return None
        return {
            "address": self._info.wid,
            "display_name": self._info.pushname,
            "platform": self._info.platform,
        }

    @property
    def is_connected(self) -> bool:
        return self._connected and not self._closing

    async def initialize(self) -> None:
        """Connect to the bridge and wait until it has started its client."""
        logger.info(f"Connecting to bridge at {self.url} ...")
        self._ws = await websockets.connect(self.url)
        self._connected = True
        self._init_future = asyncio.get_running_loop().create_future()
        self._reader = asyncio.create_task(self._read_loop())

        await self._send_frame(BridgeCommand(type="initialize", options=self.options))
        try:
            await asyncio.wait_for(self._init_future, timeout=self.init_timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(
                f"Bridge did not finish initializing within {self.init_timeout}s"
            ) from None

    async def destroy(self) -> None:
        self._closing = True
        try:
            if self._ws is not None and self._connected:
                await self._send_frame(BridgeCommand(type="destroy"))
        finally:
            self._connected = False
            self._fail_pending(ConnectionError("Bridge transport destroyed"))
            if self._reader and not self._reader.done():
                self._reader.cancel()
            if self._ws is not None:
                await self._ws.close()

    async def send_message(self, address: str, body: str) -> None:
        if not self.is_connected:
            raise ConnectionError("Bridge is not connected")

        request_id = str(uuid.uuid4())
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await self._send_frame(
                BridgeSendMessage(request_id=request_id, to=address, body=body)
            )
            result: BridgeResultMessage = await asyncio.wait_for(
                future, timeout=self.send_timeout
            )
        except asyncio.TimeoutError:
            raise TimeoutError(
                f"Bridge did not confirm the message within {self.send_timeout}s"
            ) from None
        finally:
            self._pending.pop(request_id, None)

        if not result.success:
            raise BridgeError(result.error or "Bridge rejected the message")

    # -- Internal ------------------------------------------------------------

    async def _send_frame(self, frame) -> None:
        await self._ws.send(json.dumps(frame.model_dump()))

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                try:
                    data = json.loads(raw)
                    frame = BridgeFrame.model_validate(data)
                except (ValueError, ValidationError):
                    logger.warning(f"Malformed frame from bridge: {raw!r:.200}")
                    continue
                await self.handle_frame(frame.type, data)
        except websockets.exceptions.ConnectionClosed as e:
            logger.info(f"Bridge connection closed: {e}")
        finally:
            was_connected = self._connected
            self._connected = False
            self._fail_pending(ConnectionError("Bridge connection lost"))
            if was_connected and not self._closing:
                await self._emit(Disconnected(reason="bridge connection lost"))

    async def handle_frame(self, kind: str, data: dict[str, Any]) -> None:
        """Translate one bridge frame into state changes and events."""
        if kind == "initialized":
            if self._init_future and not self._init_future.done():
                self._init_future.set_result(None)

        elif kind == "init_error":
            error = BridgeError(data.get("error") or "Bridge failed to initialize")
            if self._init_future and not self._init_future.done():
                self._init_future.set_exception(error)

        elif kind == "qr":
            await self._emit(ChallengeIssued(payload=data.get("qr") or ""))

        elif kind == "authenticated":
            await self._emit(Authenticated())

        elif kind == "ready":
            self._info = BridgeInfo.model_validate(data.get("info") or {})
            await self._emit(Ready())

        elif kind == "disconnected":
            self._info = None
            await self._emit(Disconnected(reason=data.get("reason") or ""))

        elif kind == "result":
            try:
                result = BridgeResultMessage.model_validate(data)
            except ValidationError:
                logger.warning("Malformed result frame from bridge")
                return
            future = self._pending.get(result.request_id)
            if future is None:
                logger.warning(f"Result for unknown request_id: {result.request_id}")
            elif not future.done():
                future.set_result(result)

        else:
            logger.debug(f"Unhandled bridge frame type: {kind}")

    def _fail_pending(self, error: Exception) -> None:
        if self._init_future and not self._init_future.done():
            self._init_future.set_exception(error)
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
