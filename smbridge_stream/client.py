"""
StreamClient - publishes bridge envelopes to destination streams.

Bounded Context: Stream sink
Responsibilities:
  - Create a destination stream on first use (named definition or default)
  - Append the payload
  - Translate backend failures into SinkPublishError

No retries: a failed publish is reported to the caller and the bridge
drops the message for that destination.
"""

import threading
from typing import Optional

from smbridge_mqtt.logging import StructuredLogger, LogEvent, create_logger
from smbridge_mqtt.schemas import StreamMessage
from smbridge_routing.errors import SinkPublishError

from .backends import StreamBackend, StreamBackendError
from .definitions import StreamDefinitions


class StreamClient:
    """
    Stream sink used by MessageBridge.

    Example:
        client = StreamClient(FileStreamBackend(Path("./streams")))
        client.publish("telemetry", b"42")
    """

    def __init__(
        self,
        backend: StreamBackend,
        definitions: Optional[StreamDefinitions] = None,
        logger: Optional[StructuredLogger] = None
    ):
        self.backend = backend
        self.definitions = definitions or StreamDefinitions()
        self.logger = logger or create_logger("stream")

        self._stats_lock = threading.Lock()
        self._appended = 0
        self._created = 0

    def publish(self, stream: str, payload: bytes) -> None:
        """
        Create `stream` if absent, then append `payload`.

        Raises:
            SinkPublishError: If creation or append fails
        """
        self.publish_message(StreamMessage(stream=stream, payload=payload))

    def publish_message(self, message: StreamMessage) -> None:
        stream = message.stream
        try:
            if not self.backend.has_stream(stream):
                definition = self.definitions.definition_for(stream)
                self.backend.create_message_stream(definition)
                with self._stats_lock:
                    self._created += 1
                self.logger.info(
                    event=LogEvent.STREAM_CREATED,
                    message="Created new stream",
                    metadata={
                        'stream': stream,
                        'strategy_on_full': definition.strategy_on_full,
                        'max_size': definition.max_size,
                    }
                )
        except StreamBackendError as e:
            raise SinkPublishError(f"Unable to create stream '{stream}': {e}", stream=stream) from e

        try:
            sequence = self.backend.append_message(stream, message.payload)
        except StreamBackendError as e:
            raise SinkPublishError(f"Unable to append to stream '{stream}': {e}", stream=stream) from e

        with self._stats_lock:
            self._appended += 1
        self.logger.debug(
            event=LogEvent.STREAM_APPENDED,
            message="Appended message to stream",
            metadata={'stream': stream, 'sequence': sequence, 'bytes': len(message.payload)}
        )

    def get_stats(self) -> dict:
        with self._stats_lock:
            return {
                'messages_appended': self._appended,
                'streams_created': self._created,
            }
