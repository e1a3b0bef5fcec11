"""
Tests for the WebSocket bridge transport.
"""

import asyncio
import json

import pytest
import websockets

from wagate.errors import BridgeError
from wagate.session.events import Authenticated, ChallengeIssued, Disconnected, Ready
from wagate.transports.bridge import BridgeTransport


@pytest.fixture
def events():
    return []


@pytest.fixture
def transport(events):
    t = BridgeTransport("ws://127.0.0.1:1/bridge", send_timeout=0.5)

    async def record(event):
        events.append(event)

    t.set_callback(record)
    return t


class TestHandleFrame:
    async def test_lifecycle_frames_become_events(self, transport, events):
        await transport.handle_frame("qr", {"type": "qr", "qr": "2@abc"})
        await transport.handle_frame("authenticated", {"type": "authenticated"})
        await transport.handle_frame(
            "ready",
            {
                "type": "ready",
                "info": {"wid": "628123", "pushname": "Desk", "platform": "web"},
            },
        )

        assert events == [ChallengeIssued(payload="2@abc"), Authenticated(), Ready()]
        assert transport.identity == {
            "address": "628123",
            "display_name": "Desk",
            "platform": "web",
        }

    async def test_ready_without_info_has_empty_identity(self, transport):
        await transport.handle_frame("ready", {"type": "ready"})
        assert transport.identity == {
            "address": None,
            "display_name": None,
            "platform": None,
        }

    async def test_disconnected_clears_identity(self, transport, events):
        await transport.handle_frame("ready", {"type": "ready", "info": {"wid": "1"}})
        await transport.handle_frame(
            "disconnected", {"type": "disconnected", "reason": "LOGOUT"}
        )

        assert events[-1] == Disconnected(reason="LOGOUT")
        assert transport.identity is None

    async def test_result_resolves_pending_send(self, transport):
        future = asyncio.get_running_loop().create_future()
        transport._pending["r1"] = future

        await transport.handle_frame(
            "result", {"type": "result", "request_id": "r1", "success": True}
        )

        assert future.result().success is True

    async def test_unknown_frames_are_ignored(self, transport, events):
        await transport.handle_frame("battery", {"type": "battery", "level": 40})
        await transport.handle_frame("result", {"type": "result"})
        assert events == []

    async def test_send_requires_connection(self, transport):
        assert not transport.is_connected
        with pytest.raises(ConnectionError):
            await transport.send_message("628@c.us", "hi")


class FakeBridge:
    """Minimal bridge process speaking the JSON protocol."""

    def __init__(self, init_error=None, reject=None, silent=False, hang_init=False):
        self.init_error = init_error
        self.hang_init = hang_init
        self.reject = reject
        self.silent = silent
        self.received = []
        self.connections = []

    async def handler(self, websocket, *args):
        self.connections.append(websocket)
        async for raw in websocket:
            frame = json.loads(raw)
            self.received.append(frame)

            if frame["type"] == "initialize":
                if self.hang_init:
                    continue
                if self.init_error:
                    await websocket.send(
                        json.dumps({"type": "init_error", "error": self.init_error})
                    )
                    continue
                await websocket.send(json.dumps({"type": "qr", "qr": "pair"}))
                await websocket.send(json.dumps({"type": "initialized"}))
                await websocket.send(
                    json.dumps(
                        {
                            "type": "ready",
                            "info": {"wid": "628999", "pushname": "Bot"},
                        }
                    )
                )

            elif frame["type"] == "send" and not self.silent:
                await websocket.send(
                    json.dumps(
                        {
                            "type": "result",
                            "request_id": frame["request_id"],
                            "success": self.reject is None,
                            "error": self.reject,
                        }
                    )
                )


async def _start(bridge):
    server = await websockets.serve(bridge.handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    return server, f"ws://127.0.0.1:{port}/bridge"


async def _stop(server):
    server.close()
    await server.wait_closed()


async def _connected(bridge, events, **kwargs):
    server, url = await _start(bridge)
    transport = BridgeTransport(url, **kwargs)

    async def record(event):
        events.append(event)

    transport.set_callback(record)
    await transport.initialize()
    return server, transport


class TestBridgeRoundTrip:
    async def test_initialize_send_destroy(self, events):
        bridge = FakeBridge()
        server, transport = await _connected(bridge, events)
        try:
            assert transport.is_connected
            await transport.send_message("628123@c.us", "hello")
            await asyncio.sleep(0.05)

            assert ChallengeIssued(payload="pair") in events
            assert Ready() in events
            assert transport.identity["address"] == "628999"
            sends = [f for f in bridge.received if f["type"] == "send"]
            assert sends[0]["to"] == "628123@c.us"
            assert sends[0]["body"] == "hello"

            await transport.destroy()
            await asyncio.sleep(0.05)
            assert not transport.is_connected
            assert bridge.received[-1]["type"] == "destroy"
            # A deliberate shutdown is not reported as a drop.
            assert not any(isinstance(e, Disconnected) for e in events)
        finally:
            await _stop(server)

    async def test_init_error_raises(self, events):
        bridge = FakeBridge(init_error="browser failed to launch")
        server, url = await _start(bridge)
        transport = BridgeTransport(url)
        transport.set_callback(lambda e: asyncio.sleep(0))
        try:
            with pytest.raises(BridgeError, match="browser failed to launch"):
                await transport.initialize()
        finally:
            await transport.destroy()
            await _stop(server)

    async def test_unanswered_initialize_times_out(self):
        bridge = FakeBridge(hang_init=True)
        server, url = await _start(bridge)
        transport = BridgeTransport(url, init_timeout=0.1)
        transport.set_callback(lambda e: asyncio.sleep(0))
        try:
            with pytest.raises(TimeoutError, match="initializing"):
                await transport.initialize()
        finally:
            await transport.destroy()
            await _stop(server)

    async def test_rejected_send_raises(self, events):
        bridge = FakeBridge(reject="not on network")
        server, transport = await _connected(bridge, events)
        try:
            with pytest.raises(BridgeError, match="not on network"):
                await transport.send_message("1@c.us", "hi")
        finally:
            await transport.destroy()
            await _stop(server)

    async def test_unconfirmed_send_times_out(self, events):
        bridge = FakeBridge(silent=True)
        server, transport = await _connected(bridge, events, send_timeout=0.1)
        try:
            with pytest.raises(TimeoutError):
                await transport.send_message("1@c.us", "hi")
            assert transport._pending == {}
        finally:
            await transport.destroy()
            await _stop(server)

    async def test_lost_connection_emits_disconnected(self, events):
        bridge = FakeBridge()
        server, transport = await _connected(bridge, events)
        try:
            await bridge.connections[0].close()
            for _ in range(50):
                if not transport.is_connected:
                    break
                await asyncio.sleep(0.01)

            assert not transport.is_connected
            assert events[-1] == Disconnected(reason="bridge connection lost")
        finally:
            await transport.destroy()
            await _stop(server)
