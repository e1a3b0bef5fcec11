"""
Pydantic models for wagate.

Covers:
- Audit log entries and send outcomes
- REST API request/response schemas
- Observer WebSocket frames
- Bridge protocol messages
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from wagate.session.state import SessionState


class MessageOutcome(str, Enum):
    SENT = "SENT"
    FAILED = "FAILED"


class MessageLogEntry(BaseModel):
    """One recorded send attempt. Never changes after it is stored."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    recipient: str
    body: str
    outcome: MessageOutcome
    failure_reason: Optional[str] = None
    created_at: datetime


# ─── REST API Models ─────────────────────────────────────────────────


class SendMessageRequest(BaseModel):
    """POST /send-message request body."""

    recipient: str = ""
    body: str = ""


class SendMessageResponse(BaseModel):
    """POST /send-message response."""

    failed: bool
    outcome: Optional[MessageOutcome] = None
    display_message: str


class StatusPayload(BaseModel):
    state: SessionState
    ready: bool


class SessionInfo(BaseModel):
    """GET /session response."""

    state: SessionState
    ready: bool
    identity: Optional[dict[str, str]] = None


class HistoryResponse(BaseModel):
    """GET /messages response."""

    entries: list[MessageLogEntry]
    count: int


# ─── Observer WebSocket Frames ───────────────────────────────────────


class ObserverFrame(BaseModel):
    """Server → Observer: one pushed event."""

    type: str
    data: Any = None


class ObserverRequest(BaseModel):
    """Observer → Server: request_disconnect / request_reconnect."""

    type: str


# ─── Bridge Protocol Messages ────────────────────────────────────────


class BridgeFrame(BaseModel):
    """Bridge → Server: any frame; extra keys depend on ``type``."""

    model_config = ConfigDict(extra="allow")

    type: str


class BridgeInfo(BaseModel):
    """Identity block carried by a bridge ``ready`` frame."""

    wid: Optional[str] = None
    pushname: Optional[str] = None
    platform: Optional[str] = None


class BridgeSendMessage(BaseModel):
    """Server → Bridge: send a text message."""

    type: str = "send"
    request_id: str
    to: str
    body: str


class BridgeResultMessage(BaseModel):
    """Bridge → Server: outcome of a send request."""

    type: str = "result"
    request_id: str
    success: bool = False
    error: Optional[str] = None


class BridgeCommand(BaseModel):
    """Server → Bridge: initialize / destroy."""

    type: str
    options: dict[str, Any] = Field(default_factory=dict)
