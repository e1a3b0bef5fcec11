"""
Base class for messaging transports.

A transport wraps one logged-in messaging client. It reports lifecycle
events through a callback and exposes the few operations the session
controller and the dispatcher need.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Mapping, Optional

from wagate.logger import get_logger
from wagate.session.events import TransportEvent

logger = get_logger(__name__)

EventCallback = Callable[[TransportEvent], Awaitable[None]]


class MessagingTransport(ABC):
    """
    Abstract messaging client.

    Subclasses call ``_emit`` for every lifecycle event; the controller
    installs the receiving callback with ``set_callback`` before
    ``initialize`` is awaited.
    """

    def __init__(self, name: str):
        self.name = name
        self._callback: Optional[EventCallback] = None

    def set_callback(self, callback: EventCallback) -> None:
        self._callback = callback

    async def _emit(self, event: TransportEvent) -> None:
        if self._callback is None:
            logger.warning(f"{self.name}: dropping {event!r}, no callback set")
            return
        await self._callback(event)

    @abstractmethod
    async def initialize(self) -> None:
        """Start the client. May take a while and may raise."""
        pass

    @abstractmethod
    async def destroy(self) -> None:
        """Shut the client down and release its resources."""
        pass

    @abstractmethod
    async def send_message(self, address: str, body: str) -> None:
        """
        Send a text message.

        Raises:
            Exception: Any failure; its message becomes the audit reason.
        """
        pass

    @property
    @abstractmethod
    def identity(self) -> Optional[Mapping[str, Any]]:
        """
        Identity snapshot with ``address``, ``display_name`` and ``platform``
        keys, or None before login. Individual values may be missing.
        """
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the underlying page/connection is alive."""
        pass
