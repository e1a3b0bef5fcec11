"""
Input validation for send requests.
"""
import re

from wagate.errors import ValidationError

DEFAULT_ADDRESS_SUFFIX = "@c.us"


def validate_send_request(recipient: str, body: str) -> tuple[str, str]:
    """
    Check that a send request carries both a recipient and a body.

    Raises:
        ValidationError: If either field is missing or empty. Whitespace
            counts as content and goes on to be attempted and recorded.
    """
    if not isinstance(recipient, str) or recipient == "":
        raise ValidationError("Recipient and message are required")

    if not isinstance(body, str) or body == "":
        raise ValidationError("Recipient and message are required")

    return recipient, body


def normalize_address(recipient: str, suffix: str = DEFAULT_ADDRESS_SUFFIX) -> str:
    """
    Turn a phone number into a transport address.

    Addresses that already carry the suffix are returned unchanged; anything
    else is reduced to its digits and suffixed.
    """
    if suffix in recipient:
        return recipient

    return re.sub(r"\D", "", recipient) + suffix
