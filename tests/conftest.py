"""Shared pytest fixtures and configuration."""

import asyncio
import os
import tempfile

import pytest

from wagate.broadcast.hub import Observer, StatusHub
from wagate.database import AuditLogDatabase
from wagate.session.controller import SessionController
from wagate.session.events import Authenticated, ChallengeIssued, Disconnected, Ready
from wagate.transports.base import MessagingTransport

DEFAULT_IDENTITY = {
    "address": "628111222333",
    "display_name": "Front Desk",
    "platform": "android",
}


class FakeTransport(MessagingTransport):
    """In-memory transport whose events are driven by the test."""

    def __init__(
        self,
        fail_init=None,
        fail_destroy=None,
        send_error=None,
        hold_init=False,
        auto_ready=False,
    ):
        super().__init__("fake")
        self.fail_init = fail_init
        self.fail_destroy = fail_destroy
        self.send_error = send_error
        self.auto_ready = auto_ready
        self.release_init = asyncio.Event()
        if not hold_init:
            self.release_init.set()

        self.initialized = False
        self.destroyed = False
        self.connected = False
        self.sent = []
        self._identity = None

    @property
    def identity(self):
        return self._identity

    @property
    def is_connected(self):
        return self.connected

    async def initialize(self):
        self.initialized = True
        await self.release_init.wait()
        if self.fail_init:
            raise RuntimeError(self.fail_init)
        self.connected = True
        if self.auto_ready:
            await self.become_ready()

    async def destroy(self):
        self.destroyed = True
        self.connected = False
        if self.fail_destroy:
            raise RuntimeError(self.fail_destroy)

    async def send_message(self, address, body):
        if self.send_error:
            raise RuntimeError(self.send_error)
        self.sent.append((address, body))

    async def issue_challenge(self, payload="pair-me"):
        await self._emit(ChallengeIssued(payload=payload))

    async def authenticate(self):
        await self._emit(Authenticated())

    async def become_ready(self, identity=None):
        self._identity = DEFAULT_IDENTITY if identity is None else identity
        await self._emit(Ready())

    async def drop(self, reason="NAVIGATION"):
        self.connected = False
        self._identity = None
        await self._emit(Disconnected(reason=reason))


class FakeTransportFactory:
    """Transport factory that remembers every instance it built."""

    def __init__(self, **options):
        self.options = options
        self.created = []

    def __call__(self):
        transport = FakeTransport(**self.options)
        self.created.append(transport)
        return transport

    @property
    def latest(self):
        return self.created[-1]


class RecordingObserver(Observer):
    """Observer that keeps every frame it is given."""

    def __init__(self, observer_id=None):
        super().__init__(observer_id)
        self.frames = []

    def deliver(self, frame):
        self.frames.append(frame)

    @property
    def types(self):
        return [frame.type for frame in self.frames]

    def of_type(self, kind):
        return [frame.data for frame in self.frames if frame.type == kind]


def fake_renderer(payload):
    return f"data:image/png;base64,{payload}"


@pytest.fixture
def temp_db():
    """Create a temporary audit database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    database = AuditLogDatabase(db_path)
    yield database

    database.engine.dispose()

    try:
        os.unlink(db_path)
    except PermissionError:
        pass


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()


@pytest.fixture
def hub(temp_db):
    return StatusHub(temp_db.alist_recent_message_logs)


@pytest.fixture
def observer(hub):
    """A recording observer registered directly (no replay)."""
    obs = RecordingObserver()
    hub.observers[obs.observer_id] = obs
    return obs


@pytest.fixture
async def controller(transport_factory, hub):
    """A started controller whose first transport has finished initializing."""
    ctrl = SessionController(
        transport_factory,
        hub,
        reconnect_delay=0.05,
        challenge_renderer=fake_renderer,
    )
    await ctrl.start()
    await _settle(ctrl)
    yield ctrl
    await ctrl.stop()


async def _settle(ctrl, rounds=10):
    for _ in range(rounds):
        await asyncio.sleep(0)
        await ctrl._events.join()


@pytest.fixture
def settle(controller):
    """Wait until queued events and spawned creations have been processed."""

    async def _wait(rounds=10):
        await _settle(controller, rounds)

    return _wait
