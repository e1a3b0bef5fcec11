"""
Lifecycle events a messaging transport reports to the session controller.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class ChallengeIssued:
    """A pairing code must be scanned; ``payload`` is the raw code text."""

    payload: str


@dataclass(frozen=True)
class Authenticated:
    pass


@dataclass(frozen=True)
class Ready:
    """The session can send; the transport's identity snapshot is populated."""

    pass


@dataclass(frozen=True)
class Disconnected:
    reason: str = ""


TransportEvent = Union[ChallengeIssued, Authenticated, Ready, Disconnected]
