"""
Bridge error taxonomy.

Configuration and envelope-capacity errors are structural and propagate to
the caller. Sink-side errors are isolated per destination by the bridge.
"""

from typing import Optional


class BridgeError(Exception):
    """Base class for all bridge errors."""
    pass


class InvalidConfigurationError(BridgeError):
    """Raised when a mapping snapshot or configuration is malformed."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class SinkPublishError(BridgeError):
    """Raised when the stream sink rejects a publish or stream creation."""

    def __init__(self, message: str, stream: Optional[str] = None):
        super().__init__(message)
        self.stream = stream


class ExportPreparationError(SinkPublishError):
    """Raised when an extension sink payload cannot be prepared."""
    pass


class EnvelopeOverflowError(BridgeError):
    """Raised when envelope metadata does not fit the 2-byte length prefix."""

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"Envelope metadata is {size} bytes, limit is {limit}"
        )
        self.size = size
        self.limit = limit
