"""
Session state values and the identity snapshot captured on READY.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Mapping, Optional

PLACEHOLDER_ADDRESS = "-"
PLACEHOLDER_NAME = "Unknown"
PLACEHOLDER_PLATFORM = "-"


class SessionState(str, Enum):
    INIT = "INIT"
    AWAITING_SCAN = "AWAITING_SCAN"
    AUTHENTICATED = "AUTHENTICATED"
    READY = "READY"
    DISCONNECTING = "DISCONNECTING"
    DISCONNECTED = "DISCONNECTED"
    RECONNECTING = "RECONNECTING"


@dataclass(frozen=True)
class SessionIdentity:
    """Who the session is logged in as."""

    address: str
    display_name: str
    platform: str

    @classmethod
    def from_snapshot(
        cls, snapshot: Optional[Mapping[str, Any]]
    ) -> "SessionIdentity":
        """Build from a transport identity snapshot, tolerating missing fields."""
        snapshot = snapshot or {}
        return cls(
            address=snapshot.get("address") or PLACEHOLDER_ADDRESS,
            display_name=snapshot.get("display_name") or PLACEHOLDER_NAME,
            platform=snapshot.get("platform") or PLACEHOLDER_PLATFORM,
        )

    def to_dict(self) -> dict[str, str]:
        return asdict(self)
