"""
Routes for sending messages and reading the audit log.

Provides:
- POST /send-message: attempt one message (always recorded unless malformed)
- GET /messages: most recent audit entries
"""

from pydantic import ValidationError as ModelValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from wagate.errors import ValidationError
from wagate.logger import get_logger
from wagate.models import HistoryResponse, SendMessageRequest, SendMessageResponse

logger = get_logger(__name__)

MAX_HISTORY_LIMIT = 500


def _invalid(message: str) -> JSONResponse:
    resp = SendMessageResponse(failed=True, outcome=None, display_message=message)
    return JSONResponse(resp.model_dump(mode="json"), status_code=400)


async def send_message(request: Request) -> JSONResponse:
    """
    POST /send-message — Send a message to one recipient.

    Body: {"recipient": "0812...", "body": "hi"}
    """
    dispatcher = request.app.state.dispatcher

    try:
        payload = SendMessageRequest(**(await request.json()))
    except ModelValidationError as e:
        return _invalid(f"Invalid request: {e.errors()[0]['msg']}")
    except Exception:
        return _invalid("Invalid JSON body")

    try:
        result = await dispatcher.send(payload.recipient, payload.body)
    except ValidationError as e:
        return _invalid(str(e))

    return JSONResponse(result.to_response().model_dump(mode="json"))


async def list_messages(request: Request) -> JSONResponse:
    """GET /messages?limit=50 — Recent audit entries, most recent first."""
    database = request.app.state.database

    try:
        limit = int(request.query_params.get("limit", request.app.state.config.history_limit))
    except ValueError:
        return JSONResponse({"error": "limit must be an integer"}, status_code=400)
    limit = max(1, min(limit, MAX_HISTORY_LIMIT))

    try:
        entries = await database.alist_recent_message_logs(limit)
    except Exception as e:
        logger.error(f"Error reading message history: {e}")
        return JSONResponse({"error": f"Internal error: {e}"}, status_code=500)

    resp = HistoryResponse(entries=entries, count=len(entries))
    return JSONResponse(resp.model_dump(mode="json"))
