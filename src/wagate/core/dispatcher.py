"""
Message Dispatcher: send a message and record the attempt, whatever happens.
"""

from dataclasses import dataclass
from typing import Optional

from wagate.broadcast.hub import StatusHub
from wagate.database import AuditLogDatabase
from wagate.errors import NotReadyError, TransmissionError
from wagate.logger import get_logger
from wagate.models import MessageLogEntry, MessageOutcome, SendMessageResponse
from wagate.session.controller import SessionController
from wagate.validation import DEFAULT_ADDRESS_SUFFIX, normalize_address, validate_send_request

logger = get_logger(__name__)

SENT_MESSAGE = "message sent"


@dataclass(frozen=True)
class SendResult:
    outcome: MessageOutcome
    failure_reason: Optional[str]
    entry: Optional[MessageLogEntry]

    @property
    def failed(self) -> bool:
        return self.outcome is MessageOutcome.FAILED

    @property
    def display_message(self) -> str:
        return self.failure_reason if self.failed else SENT_MESSAGE

    def to_response(self) -> SendMessageResponse:
        return SendMessageResponse(
            failed=self.failed,
            outcome=self.outcome,
            display_message=self.display_message,
        )


class MessageDispatcher:
    """
    Validates, gates, transmits and records outgoing messages.

    Only validation errors propagate to the caller. Every attempt that
    passes validation ends up as exactly one audit entry and a definitive
    SENT/FAILED result.
    """

    def __init__(
        self,
        controller: SessionController,
        database: AuditLogDatabase,
        hub: StatusHub,
        address_suffix: str = DEFAULT_ADDRESS_SUFFIX,
    ):
        self.controller = controller
        self.database = database
        self.hub = hub
        self.address_suffix = address_suffix

    async def send(self, recipient: str, body: str) -> SendResult:
        """
        Attempt one message.

        Raises:
            ValidationError: If recipient or body is empty. Nothing is
                recorded in that case.
        """
        recipient, body = validate_send_request(recipient, body)

        outcome = MessageOutcome.SENT
        failure_reason = None
        try:
            address = normalize_address(recipient, self.address_suffix)
            await self.controller.transmit(address, body)
        except NotReadyError as e:
            outcome, failure_reason = MessageOutcome.FAILED, str(e)
        except TransmissionError as e:
            logger.warning(f"Sending to {recipient} failed: {e}")
            outcome, failure_reason = MessageOutcome.FAILED, str(e)

        entry = await self._record(recipient, body, outcome, failure_reason)
        return SendResult(outcome=outcome, failure_reason=failure_reason, entry=entry)

    async def _record(
        self,
        recipient: str,
        body: str,
        outcome: MessageOutcome,
        failure_reason: Optional[str],
    ) -> Optional[MessageLogEntry]:
        try:
            entry = await self.database.ainsert_message_log(
                recipient, body, outcome, failure_reason
            )
        except Exception as e:
            logger.error(
                f"Failed to record {outcome.value} message to {recipient}: {e}"
            )
            return None

        self.hub.publish_log_entry(entry)
        return entry
