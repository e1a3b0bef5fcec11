"""
Messaging transports.

- base: the MessagingTransport ABC the session controller drives
- bridge: WebSocket client for a companion process running the web client
"""

from wagate.transports.base import MessagingTransport

__all__ = ["MessagingTransport"]
