"""
Session controller.

Owns the one messaging session of the process and drives its state machine:

    INIT ──qr──▶ AWAITING_SCAN ──authenticated──▶ AUTHENTICATED ──ready──▶ READY
    READY ──disconnected──▶ RECONNECTING ──(after delay, new session)──▶ ...
    any live ──operator disconnect──▶ DISCONNECTING ──▶ DISCONNECTED
    DISCONNECTED ──operator reconnect──▶ RECONNECTING ──▶ ...

Transport events and operator requests go through a single queue and are
handled one at a time by a worker task, so a transition and its broadcasts
always complete before the next one starts.
"""

import asyncio
import functools
from dataclasses import dataclass
from typing import Callable, Optional

from wagate.broadcast.hub import StatusHub
from wagate.errors import (
    NotReadyError,
    TeardownError,
    TransmissionError,
    TransportInitError,
)
from wagate.logger import get_logger
from wagate.qr import render_challenge
from wagate.session.events import (
    Authenticated,
    ChallengeIssued,
    Disconnected,
    Ready,
    TransportEvent,
)
from wagate.session.state import SessionIdentity, SessionState
from wagate.transports.base import MessagingTransport

logger = get_logger(__name__)

RECONNECT_DELAY = 4.0  # seconds
NOT_READY_REASON = "session not ready / reconnecting"

TransportFactory = Callable[[], MessagingTransport]


# ─── Queue items ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class _TransportSignal:
    generation: int
    event: TransportEvent


@dataclass(frozen=True)
class _DisconnectRequested:
    pass


@dataclass(frozen=True)
class _ReconnectRequested:
    pass


@dataclass(frozen=True)
class _ReconnectDue:
    generation: int


@dataclass(frozen=True)
class _InitFailed:
    generation: int
    reason: str


# ─── Controller ──────────────────────────────────────────────────────


class SessionController:
    """
    Single owner of the session instance and its state.

    Args:
        transport_factory: Builds a fresh, uninitialized transport.
        hub: Receives every state change for fan-out.
        reconnect_delay: Seconds to wait before re-creating a session that
            dropped on its own.
        challenge_renderer: Turns a raw pairing code into a displayable image.
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        hub: StatusHub,
        reconnect_delay: float = RECONNECT_DELAY,
        challenge_renderer: Callable[[str], str] = render_challenge,
    ):
        self._transport_factory = transport_factory
        self._hub = hub
        self.reconnect_delay = reconnect_delay
        self._render_challenge = challenge_renderer

        self._transport: Optional[MessagingTransport] = None
        self._state = SessionState.INIT
        self._ready = False
        self._identity: Optional[SessionIdentity] = None
        self._challenge: Optional[str] = None

        # Bumped on every creation, unexpected drop and operator disconnect.
        # Events and reconnect timers from older generations are ignored.
        self._generation = 0
        self._create_lock = asyncio.Lock()
        self._create_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

        self._events: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

        self._handlers = {
            ChallengeIssued: self._on_challenge,
            Authenticated: self._on_authenticated,
            Ready: self._on_ready,
            Disconnected: self._on_disconnected,
            _DisconnectRequested: self._on_disconnect_requested,
            _ReconnectRequested: self._on_reconnect_requested,
            _ReconnectDue: self._on_reconnect_due,
            _InitFailed: self._on_init_failed,
        }

    # -- Read-only view ------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def identity(self) -> Optional[SessionIdentity]:
        return self._identity

    @property
    def has_session(self) -> bool:
        return self._transport is not None

    def is_ready(self) -> bool:
        """
        Whether a message may be handed to the transport right now.

        Every condition is checked on its own because each can lag behind the
        others while a session is starting up or being torn down.
        """
        transport = self._transport
        if transport is None:
            return False

        identity = transport.identity
        if not identity or not identity.get("address"):
            return False

        if not transport.is_connected:
            return False

        return self._ready

    # -- Lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Start the event worker and create the first session."""
        if self._worker and not self._worker.done():
            return
        self._worker = asyncio.create_task(self._run())
        self._spawn_creation()
        logger.info("Session controller started")

    async def stop(self) -> None:
        """Stop processing, cancel pending work and tear the session down."""
        self._generation += 1
        self._cancel_reconnect()

        for task in (self._create_task, self._worker):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        await self._teardown()
        logger.info("Session controller stopped")

    # -- Operations ----------------------------------------------------------

    async def request_disconnect(self) -> None:
        """Operator logout. No automatic reconnect follows."""
        await self._submit(_DisconnectRequested())

    async def request_reconnect(self) -> None:
        """Operator reconnect. Ignored while a session exists or is starting."""
        await self._submit(_ReconnectRequested())

    async def transmit(self, address: str, body: str) -> None:
        """
        Hand a message to the transport.

        Raises:
            NotReadyError: If the session is not ready; nothing is sent.
            TransmissionError: If the transport raised while sending.
        """
        if not self.is_ready():
            raise NotReadyError(NOT_READY_REASON)

        try:
            await self._transport.send_message(address, body)
        except Exception as e:
            raise TransmissionError(str(e) or type(e).__name__) from e

    # -- Event queue ---------------------------------------------------------

    async def _submit(self, item) -> None:
        if self._worker is None or self._worker.done():
            raise RuntimeError("Session controller is not running")

        future = asyncio.get_running_loop().create_future()
        self._events.put_nowait((item, future))
        await future

    async def _on_transport_event(self, generation: int, event: TransportEvent) -> None:
        self._events.put_nowait((_TransportSignal(generation, event), None))

    async def _run(self) -> None:
        while True:
            item, future = await self._events.get()
            try:
                await self._handle(item)
            except Exception as e:
                logger.exception(f"Error handling {type(item).__name__}: {e}")
            finally:
                if future is not None and not future.done():
                    future.set_result(None)
                self._events.task_done()

    async def _handle(self, item) -> None:
        if isinstance(item, _TransportSignal):
            if item.generation != self._generation or self._transport is None:
                logger.debug(
                    f"Ignoring {type(item.event).__name__} from stale "
                    f"generation {item.generation}"
                )
                return
            item = item.event

        await self._handlers[type(item)](item)

    # -- Transport events ----------------------------------------------------

    async def _on_challenge(self, event: ChallengeIssued) -> None:
        if self._state in (
            SessionState.READY,
            SessionState.DISCONNECTING,
            SessionState.DISCONNECTED,
        ):
            logger.warning(f"Ignoring pairing challenge in state {self._state.value}")
            return

        try:
            image = self._render_challenge(event.payload)
        except Exception as e:
            logger.error(f"Failed to render pairing challenge: {e}")
            return

        self._transition(SessionState.AWAITING_SCAN, challenge=image)

    async def _on_authenticated(self, event: Authenticated) -> None:
        if self._state not in (
            SessionState.INIT,
            SessionState.AWAITING_SCAN,
            SessionState.AUTHENTICATED,
            SessionState.RECONNECTING,
        ):
            logger.debug(f"Ignoring authenticated event in state {self._state.value}")
            return

        self._transition(SessionState.AUTHENTICATED)

    async def _on_ready(self, event: Ready) -> None:
        identity = SessionIdentity.from_snapshot(self._transport.identity)
        self._transition(SessionState.READY, identity=identity)
        logger.info(
            f"Session ready as {identity.display_name} "
            f"({identity.address}, {identity.platform})"
        )

    async def _on_disconnected(self, event: Disconnected) -> None:
        logger.warning(f"Transport disconnected: {event.reason or 'no reason given'}")

        self._generation += 1
        self._transition(SessionState.RECONNECTING)
        await self._teardown()
        self._schedule_reconnect()

    # -- Operator requests ---------------------------------------------------

    async def _on_disconnect_requested(self, request: _DisconnectRequested) -> None:
        if (
            self._transport is None
            and not self._creation_pending()
            and not self._reconnect_pending()
        ):
            logger.info("Disconnect requested but no session is active")
            return

        logger.info("Disconnecting session on request")
        self._generation += 1
        self._cancel_reconnect()
        if self._create_task and not self._create_task.done():
            self._create_task.cancel()

        self._transition(SessionState.DISCONNECTING)
        await self._teardown()
        self._transition(SessionState.DISCONNECTED)

    async def _on_reconnect_requested(self, request: _ReconnectRequested) -> None:
        if self._transport is not None or self._creation_pending():
            logger.info("Reconnect requested but a session already exists")
            return

        logger.info("Reconnecting session on request")
        self._cancel_reconnect()
        self._transition(SessionState.RECONNECTING)
        self._spawn_creation()

    async def _on_reconnect_due(self, due: _ReconnectDue) -> None:
        if due.generation != self._generation:
            logger.info("Skipping reconnect superseded by a later request")
            return
        if self._transport is not None or self._creation_pending():
            logger.info("Skipping reconnect: a session already exists")
            return

        self._spawn_creation()

    async def _on_init_failed(self, failure: _InitFailed) -> None:
        if failure.generation != self._generation:
            return

        # The state stays where it was; an operator reconnect starts over.
        await self._teardown()
        logger.warning(
            f"Session not started ({failure.reason}); "
            f"staying in {self._state.value} until a reconnect is requested"
        )

    # -- Internal ------------------------------------------------------------

    def _transition(
        self,
        state: SessionState,
        identity: Optional[SessionIdentity] = None,
        challenge: Optional[str] = None,
    ) -> None:
        previous = self._state
        self._state = state
        self._ready = state is SessionState.READY
        self._identity = identity if self._ready else None
        self._challenge = challenge if state is SessionState.AWAITING_SCAN else None

        if previous is not state:
            logger.info(f"Session state: {previous.value} -> {state.value}")

        self._hub.publish_status(self._state, self._ready)
        self._hub.publish_identity(self._identity)
        self._hub.publish_challenge(self._challenge)

    def _spawn_creation(self) -> None:
        self._create_task = asyncio.create_task(self._create_session())

    async def _create_session(self) -> bool:
        """Build and initialize a transport unless one exists or is starting."""
        if self._create_lock.locked() or self._transport is not None:
            logger.debug("Session creation skipped: one exists or is starting")
            return False

        async with self._create_lock:
            self._generation += 1
            generation = self._generation

            try:
                transport = self._transport_factory()
                transport.set_callback(
                    functools.partial(self._on_transport_event, generation)
                )
                self._transport = transport
                logger.info(
                    f"Initializing transport '{transport.name}' "
                    f"(generation {generation})"
                )
                await transport.initialize()
            except Exception as e:
                error = TransportInitError(str(e) or type(e).__name__)
                logger.error(f"Transport initialization failed: {error}")
                self._events.put_nowait((_InitFailed(generation, str(error)), None))
                return False

        return True

    async def _destroy(self, transport: MessagingTransport) -> None:
        try:
            await transport.destroy()
        except Exception as e:
            raise TeardownError(str(e) or type(e).__name__) from e

    async def _teardown(self) -> None:
        """Destroy the current transport, if any, and always free the slot."""
        transport = self._transport
        if transport is None:
            return

        try:
            await self._destroy(transport)
        except TeardownError as e:
            logger.warning(f"Ignoring transport teardown failure: {e}")
        finally:
            if self._transport is transport:
                self._transport = None

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        self._reconnect_task = asyncio.create_task(
            self._reconnect_later(self._generation)
        )
        logger.info(f"Reconnecting in {self.reconnect_delay}s")

    async def _reconnect_later(self, generation: int) -> None:
        await asyncio.sleep(self.reconnect_delay)
        self._events.put_nowait((_ReconnectDue(generation), None))

    def _creation_pending(self) -> bool:
        # Spawned but not yet started tasks do not hold the lock.
        return self._create_task is not None and not self._create_task.done()

    def _reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_pending():
            self._reconnect_task.cancel()
        self._reconnect_task = None
