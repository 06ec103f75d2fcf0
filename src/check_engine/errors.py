"""
Exception hierarchy of the check execution engine.

Probe failures are never raised: they are results. These exceptions cover
configuration and infrastructure problems that callers may want to tell apart.
"""


class EngineError(Exception):
    """Base class for errors raised by the engine."""


class NotificationDeliveryError(EngineError):
    """Raised by a dispatcher when the notification service rejects a delivery."""

    def __init__(self, channel_type: str, detail: str) -> None:
        super().__init__(f"Failed to send {channel_type} notification: {detail}")
        self.channel_type = channel_type
        self.detail = detail
