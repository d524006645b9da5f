"""
Bridge Message Schemas
=====================

Bounded Context: Data Structures

Frozen dataclasses exchanged between the transport, the routing engine and
the stream sink.

Public API
----------
    MQTTMessage: Inbound (topic, payload) pair
    StreamMessage: Outbound (stream, payload) pair
"""

from .messages import MQTTMessage, StreamMessage

__all__ = [
    'MQTTMessage',
    'StreamMessage',
]
