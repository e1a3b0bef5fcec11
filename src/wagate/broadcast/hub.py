"""
Status broadcast hub.

Keeps the latest session snapshot (status, identity, pairing challenge) and
fans every update out to all connected observers. Observers that connect
late are brought up to date with a replay of the snapshot plus recent
history before they receive live events.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

from wagate.logger import get_logger
from wagate.models import MessageLogEntry, ObserverFrame, StatusPayload
from wagate.session.state import SessionIdentity, SessionState

logger = get_logger(__name__)

HistoryLoader = Callable[[int], Awaitable[list[MessageLogEntry]]]

STATUS = "status"
IDENTITY = "identity"
CHALLENGE = "challenge"
HISTORY_INIT = "history_init"
HISTORY_UPDATE = "history_update"


class Observer(ABC):
    """A live subscriber. ``deliver`` must not block."""

    def __init__(self, observer_id: Optional[str] = None):
        self.observer_id = observer_id or str(uuid.uuid4())

    @abstractmethod
    def deliver(self, frame: ObserverFrame) -> None:
        pass


class QueueObserver(Observer):
    """Buffers frames for a writer task to drain with ``next_frame``."""

    def __init__(self, observer_id: Optional[str] = None):
        super().__init__(observer_id)
        self._queue: asyncio.Queue = asyncio.Queue()

    def deliver(self, frame: ObserverFrame) -> None:
        self._queue.put_nowait(frame)

    async def next_frame(self) -> ObserverFrame:
        return await self._queue.get()


class StatusHub:
    """
    Publish/subscribe hub between the session controller and observers.

    Only the session controller calls the ``publish_*`` methods, which also
    update the snapshot used for replays.
    """

    def __init__(self, history_loader: HistoryLoader, history_limit: int = 50):
        self._history_loader = history_loader
        self.history_limit = history_limit
        self.observers: dict[str, Observer] = {}
        # Observers still waiting for their history replay, with the log
        # entries published in the meantime.
        self._replaying: dict[str, list[MessageLogEntry]] = {}

        self.state = SessionState.INIT
        self.ready = False
        self.identity: Optional[SessionIdentity] = None
        self.challenge: Optional[str] = None

    @property
    def observer_count(self) -> int:
        return len(self.observers)

    # -- Publishing ----------------------------------------------------------

    def publish_status(self, state: SessionState, ready: bool) -> None:
        self.state = state
        self.ready = ready
        self._broadcast(STATUS, self._status_payload())

    def publish_identity(self, identity: Optional[SessionIdentity]) -> None:
        self.identity = identity
        if identity is not None:
            self._broadcast(IDENTITY, identity.to_dict())

    def publish_challenge(self, challenge: Optional[str]) -> None:
        self.challenge = challenge
        if challenge is not None:
            self._broadcast(CHALLENGE, {"image": challenge})

    def publish_log_entry(self, entry: MessageLogEntry) -> None:
        for buffered in self._replaying.values():
            buffered.append(entry)
        self._broadcast(HISTORY_UPDATE, entry.model_dump(mode="json"))

    # -- Observers -----------------------------------------------------------

    async def attach(self, observer: Observer) -> None:
        """
        Register an observer and replay the current view to it.

        Frames, in order: status, identity (if any), challenge (if any),
        history_init with the most recent entries (most recent first), then
        any entries that were published while the history was loading.
        """
        self.observers[observer.observer_id] = observer
        self._replaying[observer.observer_id] = []
        logger.info(f"Observer attached: {observer.observer_id}")

        try:
            history = await self._history_loader(self.history_limit)
        except Exception as e:
            logger.error(f"Failed to load history for observer replay: {e}")
            history = []

        missed = self._replaying.pop(observer.observer_id, [])
        if observer.observer_id not in self.observers:
            return

        frames = [ObserverFrame(type=STATUS, data=self._status_payload())]
        if self.identity is not None:
            frames.append(ObserverFrame(type=IDENTITY, data=self.identity.to_dict()))
        if self.challenge is not None:
            frames.append(ObserverFrame(type=CHALLENGE, data={"image": self.challenge}))
        frames.append(
            ObserverFrame(
                type=HISTORY_INIT,
                data=[entry.model_dump(mode="json") for entry in history],
            )
        )
        seen = {entry.id for entry in history}
        for entry in missed:
            if entry.id not in seen:
                frames.append(
                    ObserverFrame(type=HISTORY_UPDATE, data=entry.model_dump(mode="json"))
                )

        for frame in frames:
            if not self._deliver(observer, frame):
                return

    def detach(self, observer: Observer) -> None:
        self._replaying.pop(observer.observer_id, None)
        if self.observers.pop(observer.observer_id, None) is not None:
            logger.info(f"Observer detached: {observer.observer_id}")

    # -- Internal ------------------------------------------------------------

    def _status_payload(self) -> dict[str, Any]:
        return StatusPayload(state=self.state, ready=self.ready).model_dump(mode="json")

    def _broadcast(self, kind: str, data: Any) -> None:
        # Observers mid-replay get the snapshot as of the end of their replay.
        frame = ObserverFrame(type=kind, data=data)
        for observer in list(self.observers.values()):
            if observer.observer_id in self._replaying:
                continue
            self._deliver(observer, frame)

    def _deliver(self, observer: Observer, frame: ObserverFrame) -> bool:
        try:
            observer.deliver(frame)
            return True
        except Exception as e:
            logger.warning(
                f"Dropping observer {observer.observer_id} after failed delivery: {e}"
            )
            self.detach(observer)
            return False
