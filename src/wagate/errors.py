"""
Exception types raised inside wagate.

Only ``ValidationError`` ever reaches a caller of the dispatcher; the others
are converted into audit records or log lines where they occur.
"""


class WagateError(Exception):
    """Base class for wagate errors."""


class ValidationError(WagateError):
    """A send request is malformed; nothing was attempted or recorded."""


class NotReadyError(WagateError):
    """The session cannot transmit right now."""


class TransmissionError(WagateError):
    """The transport raised while sending a message."""


class TransportInitError(WagateError):
    """The transport failed to initialize."""


class TeardownError(WagateError):
    """The transport failed to shut down cleanly."""


class BridgeError(WagateError):
    """The bridge process rejected a request or broke protocol."""
