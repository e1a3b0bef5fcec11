"""
Session management for wagate.

- state: SessionState values and the SessionIdentity snapshot
- events: lifecycle events reported by transports
- controller: the state machine owning the single session instance
"""
