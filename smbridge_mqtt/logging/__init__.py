"""
Structured Logging for the Stream Manager Bridge
================================================

Bounded Context: Observability

JSON-structured logging shared by the transport, routing and stream
packages.

Public API
----------
    LogEvent: Typed event names (enum)
    StructuredLogger: JSON logger implementation
    create_logger: Factory function

Example:
    >>> from smbridge_mqtt.logging import create_logger, LogEvent
    >>> logger = create_logger("bridge")
    >>> logger.info(
    ...     event=LogEvent.MAPPING_UPDATED,
    ...     message="Processed mapping",
    ...     metadata={'filters': 3}
    ... )
"""

from .events import LogEvent
from .structured import StructuredLogger, create_logger

__all__ = [
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
