"""wagate: single-session messaging gateway with live status and an audit log."""

__version__ = "0.1.0"
