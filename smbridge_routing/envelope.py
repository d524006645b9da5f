"""
Envelope Framer
===============

Bounded Context: Wire format towards the stream sink

Envelope layout when any enrichment is requested:

    [2-byte big-endian metadata length][UTF-8 JSON metadata][original payload]

With no enrichment the payload is forwarded untouched. Metadata is a
compact JSON object with, in this order, an optional "timestamp"
(local time, "yyyy/MM/dd HH:mm:ss.SSSSSS") and an optional "topic".

Example:
    >>> frame(False, True, MQTTMessage("mqtt/topic2", b"P"))
    b'\\x00\\x17{"topic":"mqtt/topic2"}P'
"""

import json
import re
import struct
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from smbridge_mqtt.schemas import MQTTMessage

from .errors import EnvelopeOverflowError

TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S.%f"
MAX_METADATA_SIZE = 0xFFFF
_LENGTH_PREFIX = struct.Struct(">H")

# C1 controls and the U+2000 block are written as \uXXXX, and "</" as "<\/"
_EXTRA_ESCAPES = re.compile("[\u0080-\u009f\u2000-\u20ff]")


@dataclass(frozen=True)
class Metadata:
    """
    Envelope metadata.

    Attributes:
        timestamp: Local wall-clock time, or None to omit
        topic: Source topic literal, or None to omit
    """
    timestamp: Optional[datetime] = None
    topic: Optional[str] = None

    def is_empty(self) -> bool:
        return self.timestamp is None and self.topic is None

    def to_dict(self) -> dict:
        data = {}
        if self.timestamp is not None:
            data['timestamp'] = self.timestamp.strftime(TIMESTAMP_FORMAT)
        if self.topic is not None:
            data['topic'] = self.topic
        return data

    def to_json(self) -> str:
        """Compact JSON text; other non-ASCII characters are kept as is."""
        text = json.dumps(self.to_dict(), separators=(',', ':'), ensure_ascii=False)
        text = _EXTRA_ESCAPES.sub(lambda m: "\\u%04x" % ord(m.group()), text)
        return text.replace("</", "<\\/")

    def to_bytes(self) -> bytes:
        return self.to_json().encode('utf-8')


def frame(
    include_timestamp: bool,
    include_topic: bool,
    message: MQTTMessage,
    clock: Optional[Callable[[], datetime]] = None
) -> bytes:
    """
    Build the bytes handed to the sink for one destination.

    Args:
        include_timestamp: Add the current local time
        include_topic: Add the message topic
        message: Inbound message
        clock: Time source (default: datetime.now)

    Returns:
        The payload itself when no flag is set, else the framed envelope

    Raises:
        EnvelopeOverflowError: If the metadata exceeds 65535 bytes
    """
    if not include_timestamp and not include_topic:
        return message.payload

    metadata = Metadata(
        timestamp=(clock or datetime.now)() if include_timestamp else None,
        topic=message.topic if include_topic else None,
    )
    header = metadata.to_bytes()
    if len(header) > MAX_METADATA_SIZE:
        raise EnvelopeOverflowError(size=len(header), limit=MAX_METADATA_SIZE)

    return b''.join((_LENGTH_PREFIX.pack(len(header)), header, message.payload))
