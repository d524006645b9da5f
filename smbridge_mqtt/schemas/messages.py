"""
Message Value Objects
=====================

Bounded Context: Shared Data Structures

Immutable carriers for the two sides of the bridge:
- MQTTMessage: what the local broker delivered (topic literal + payload)
- StreamMessage: what is appended to a destination stream
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class MQTTMessage:
    """
    Inbound message from the local broker.

    Attributes:
        topic: Concrete topic literal (never contains wildcards)
        payload: Raw payload bytes, opaque to the bridge

    Example:
        >>> msg = MQTTMessage(topic="sensors/t1/humidity", payload=b"42")
        >>> msg.topic_segments
        ['sensors', 't1', 'humidity']
    """
    topic: str
    payload: bytes

    def __post_init__(self):
        if not isinstance(self.payload, (bytes, bytearray, memoryview)):
            raise TypeError(
                f"MQTTMessage payload must be bytes, got {type(self.payload).__name__}"
            )

    @property
    def topic_segments(self):
        """Topic split on '/'."""
        return self.topic.split('/')


@dataclass(frozen=True)
class StreamMessage:
    """
    Outbound record for a destination stream.

    Attributes:
        stream: Destination stream name
        payload: Envelope bytes (framed or raw)
    """
    stream: str
    payload: bytes

    def __post_init__(self):
        if not self.stream:
            raise ValueError("StreamMessage stream name cannot be empty")
