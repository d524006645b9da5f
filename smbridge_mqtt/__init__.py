"""
Stream Manager Bridge - MQTT Package
====================================

Bounded Context: Local broker side of the bridge

Architecture:
- schemas/: Immutable message value objects
- logging/: Structured JSON logging for observability
- client: Subscription-managing paho-mqtt client

Public API
----------
Schemas:
    MQTTMessage, StreamMessage

Client:
    MQTTClient, MQTTClientError

Logging:
    LogEvent, StructuredLogger, create_logger
"""

__version__ = "1.0.0"

from .schemas import MQTTMessage, StreamMessage
from .client import MQTTClient, MQTTClientError
from .logging import LogEvent, StructuredLogger, create_logger

__all__ = [
    '__version__',
    # Schemas
    'MQTTMessage',
    'StreamMessage',
    # Client
    'MQTTClient',
    'MQTTClientError',
    # Logging
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
