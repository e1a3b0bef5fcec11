"""
Real-time fan-out of session status and message history to observers.
"""

from wagate.broadcast.hub import Observer, QueueObserver, StatusHub

__all__ = ["Observer", "QueueObserver", "StatusHub"]
