"""
Structured JSON Logger
=====================

Bounded Context: Observability Infrastructure

Every log line is one JSON document:

    {
        "timestamp": "2025-10-24T15:30:45.123456+00:00",
        "level": "INFO",
        "component": "bridge",
        "event": "routing.message.forwarded",
        "message": "Published message",
        "context": {"service_id": "edge_01"},
        "metadata": {"topic": "sensors/t1", "stream": "telemetry"}
    }

"context" holds fields bound once per logger (bind()); "metadata" holds
per-call fields. Records still go through the stdlib logging tree, so
handlers installed by the entry point (console, file) receive them too.

Example:
    >>> logger = create_logger("bridge").bind(service_id="edge_01")
    >>> logger.info(
    ...     event=LogEvent.MESSAGE_FORWARDED,
    ...     message="Published message",
    ...     metadata={'topic': 'sensors/t1', 'stream': 'telemetry'}
    ... )
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from .events import LogEvent

LOGGER_PREFIX = "smbridge"


class StructuredLogger:
    """
    JSON logger for one component.

    Loggers created by bind() share the underlying logging.Logger (and
    therefore its level and handlers) with their parent.
    """

    def __init__(
        self,
        component: str,
        level: int = logging.INFO,
        logger_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        self.component = component
        self.logger_name = logger_name or f"{LOGGER_PREFIX}.{component}"
        self.context = dict(context or {})
        self.logger = logging.getLogger(self.logger_name)
        self.logger.setLevel(level)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(JSONFormatter())
            self.logger.addHandler(handler)

    def bind(self, **context: Any) -> 'StructuredLogger':
        """Child logger whose lines carry `context` in addition to ours."""
        return StructuredLogger(
            component=self.component,
            level=self.logger.level,
            logger_name=self.logger_name,
            context={**self.context, **context},
        )

    def _log(
        self,
        level: int,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> None:
        # Disabled levels skip serialization
        if not self.logger.isEnabledFor(level):
            return

        entry: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': logging.getLevelName(level),
            'component': self.component,
            'event': event.value,
            'message': message,
        }
        if self.context:
            entry['context'] = self.context
        if metadata:
            entry['metadata'] = metadata
        if exc_info is not None:
            entry['exception'] = {
                'type': type(exc_info).__name__,
                'message': str(exc_info),
            }

        self.logger.log(
            level,
            json.dumps(entry, default=str, ensure_ascii=False),
            exc_info=exc_info if level >= logging.ERROR else None
        )

    def debug(self, event: LogEvent, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._log(logging.DEBUG, event, message, metadata)

    def info(self, event: LogEvent, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._log(logging.INFO, event, message, metadata)

    def warning(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> None:
        self._log(logging.WARNING, event, message, metadata, exc_info)

    def error(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> None:
        """
        Log an error; `exc_info` adds an "exception" object and, on
        handlers that render it, the traceback.

        Example:
            >>> try:
            ...     sink.publish(stream, payload)
            ... except SinkPublishError as e:
            ...     logger.error(
            ...         event=LogEvent.SINK_PUBLISH_ERROR,
            ...         message="Could not export payload",
            ...         exc_info=e,
            ...         metadata={'stream': stream}
            ...     )
        """
        self._log(logging.ERROR, event, message, metadata, exc_info)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)


class JSONFormatter(logging.Formatter):
    """
    Formatter for the component handler.

    Record messages are already JSON documents; the traceback, when
    present, is appended on the following lines.
    """

    def format(self, record: logging.LogRecord) -> str:
        text = record.getMessage()
        if record.exc_info and record.exc_info[2] is not None:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


def create_logger(
    component: str,
    level: int = logging.INFO
) -> StructuredLogger:
    """Factory for a StructuredLogger named smbridge.<component>."""
    return StructuredLogger(component=component, level=level)
