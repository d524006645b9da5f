"""
MessageBridge - routes local MQTT messages to streams.

Bounded Context: Routing engine
Responsibilities:
  - Rebuild the routing index on every mapping change
  - Hand the transport the complete subscription set (one call per change)
  - Match inbound topics and fan out to every matched destination
  - Frame each destination's payload and publish it to the sink

Threading:
  - on_configuration_changed(): whatever thread runs TopicMapping.replace()
  - handle_message(): transport thread(s), possibly concurrent
  - Index rebuild + subscription update serialized by _update_lock
  - handle_message() reads the index reference once, never locks

Reserved topic:
  Messages on "$SM-BRIDGE/<stream>/..." are forwarded to <stream> with
  timestamp and topic enrichment, in addition to any configured match.
"""

import threading
from datetime import datetime
from typing import Any, Callable, Optional, Protocol, Set

from smbridge_mqtt.schemas import MQTTMessage
from smbridge_mqtt.logging import StructuredLogger, LogEvent, create_logger

from .envelope import frame
from .errors import EnvelopeOverflowError, ExportPreparationError, SinkPublishError
from .index import RoutingIndex
from .mapping import MappingEntry, TopicMapping
from .topics import is_matched

RESERVED_PREFIX = "$SM-BRIDGE"
RESERVED_TOPIC = f"{RESERVED_PREFIX}/+/#"
APPEND_TIME_DEFAULT_STREAM = True
APPEND_TOPIC_DEFAULT_STREAM = True


class Transport(Protocol):
    def update_subscriptions(self, topics: Set[str], on_message: Callable[[MQTTMessage], None]) -> None:
        ...


class Sink(Protocol):
    def publish(self, stream: str, payload: bytes) -> None:
        ...


ExportPreparer = Callable[[Any, bytes], bytes]


class MessageBridge:
    """
    Routing engine between the local broker and the stream sink.

    Example:
        mapping = TopicMapping()
        bridge = MessageBridge(mapping)
        bridge.attach_sink(stream_client)
        bridge.attach_transport(mqtt_client)   # subscribes immediately

        mapping.replace(parse_mapping(config.mqtt_stream_mapping))
        # -> index rebuilt, mqtt_client.update_subscriptions(...) called once
    """

    def __init__(
        self,
        topic_mapping: TopicMapping,
        logger: Optional[StructuredLogger] = None,
        export_preparer: Optional[ExportPreparer] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            topic_mapping: Mapping store to observe
            logger: Structured logger (default: component "bridge")
            export_preparer: Turns (extension_sink, envelope) into the
                payload to publish; required only when entries carry one
            clock: Time source for envelope timestamps
        """
        self.topic_mapping = topic_mapping
        self.logger = logger or create_logger("bridge")
        self.export_preparer = export_preparer
        self.clock = clock

        self._index = RoutingIndex.empty()
        self._transport: Optional[Transport] = None
        self._sink: Optional[Sink] = None
        self._update_lock = threading.Lock()

        self._stats_lock = threading.Lock()
        self._stats = {
            'messages_received': 0,
            'messages_forwarded': 0,
            'destinations_failed': 0,
            'messages_unrouted': 0,
        }

        self.topic_mapping.subscribe(self.on_configuration_changed)
        self.on_configuration_changed()

    # ===== Collaborators =====

    def attach_transport(self, transport: Transport) -> None:
        """Store the transport and push the full subscription set to it."""
        with self._update_lock:
            self._transport = transport
            self._update_subscriptions()

    def attach_sink(self, sink: Sink) -> None:
        """Store the sink; no I/O."""
        self._sink = sink

    # ===== Configuration =====

    @property
    def index(self) -> RoutingIndex:
        return self._index

    def subscription_topics(self) -> Set[str]:
        """Configured filters plus the reserved filter."""
        topics = set(self._index.filters)
        topics.add(RESERVED_TOPIC)
        return topics

    def on_configuration_changed(self) -> None:
        """Rebuild the routing index and re-apply subscriptions."""
        with self._update_lock:
            snapshot = self.topic_mapping.current()
            self._index = RoutingIndex.build(snapshot.values())

            self.logger.info(
                event=LogEvent.MAPPING_UPDATED,
                message="Processed mapping",
                metadata={
                    'entries': len(snapshot),
                    'filters': sorted(self._index.filters),
                }
            )

            if self._transport is not None:
                self._update_subscriptions()

    def _update_subscriptions(self) -> None:
        # Caller holds _update_lock
        topics = self.subscription_topics()
        self.logger.debug(
            event=LogEvent.SUBSCRIPTIONS_UPDATED,
            message="Updating subscriptions",
            metadata={'topics': sorted(topics)}
        )
        self._transport.update_subscriptions(topics, self.handle_message)

    # ===== Message path =====

    def handle_message(self, message: MQTTMessage) -> None:
        """
        Forward one inbound message to every matched destination.

        Sink, export and envelope-capacity failures of one destination are
        logged and do not stop the remaining destinations.
        """
        self._count('messages_received')
        sink = self._sink
        if sink is None:
            self.logger.debug(
                event=LogEvent.MQTT_MESSAGE_RECEIVED,
                message="No sink attached, dropping message",
                metadata={'topic': message.topic}
            )
            return

        matched = self._index.match(message.topic)
        routed = bool(matched)
        for entry in matched:
            self._dispatch(sink, entry, message)

        if is_matched(RESERVED_TOPIC, message.topic):
            stream = message.topic_segments[1]
            if stream:
                routed = True
                self._dispatch(sink, MappingEntry(
                    topic_filter=RESERVED_TOPIC,
                    destination_stream=stream,
                    include_timestamp=APPEND_TIME_DEFAULT_STREAM,
                    include_topic=APPEND_TOPIC_DEFAULT_STREAM,
                ), message)
            else:
                self.logger.warning(
                    event=LogEvent.MESSAGE_UNROUTED,
                    message="Reserved topic without a stream name",
                    metadata={'topic': message.topic}
                )

        if not routed:
            self._count('messages_unrouted')
            self.logger.debug(
                event=LogEvent.MESSAGE_UNROUTED,
                message="No destination for topic",
                metadata={'topic': message.topic}
            )

    def _dispatch(self, sink: Sink, entry: MappingEntry, message: MQTTMessage) -> None:
        stream = entry.destination_stream
        try:
            payload = frame(entry.include_timestamp, entry.include_topic, message, clock=self.clock)
            if entry.extension_sink is not None:
                payload = self._prepare_export(entry, payload)
            sink.publish(stream, payload)
        except EnvelopeOverflowError as e:
            self._count('destinations_failed')
            self.logger.error(
                event=LogEvent.ENVELOPE_OVERFLOW_ERROR,
                message="Envelope metadata too large",
                exc_info=e,
                metadata={'stream': stream, 'topic': message.topic, 'size': e.size}
            )
            return
        except ExportPreparationError as e:
            self._count('destinations_failed')
            self.logger.error(
                event=LogEvent.EXPORT_ERROR,
                message="Could not prepare export payload",
                exc_info=e,
                metadata={'stream': stream, 'topic': message.topic}
            )
            return
        except SinkPublishError as e:
            self._count('destinations_failed')
            self.logger.error(
                event=LogEvent.SINK_PUBLISH_ERROR,
                message="Could not export payload",
                exc_info=e,
                metadata={'stream': stream, 'topic': message.topic}
            )
            return

        self._count('messages_forwarded')
        self.logger.info(
            event=LogEvent.MESSAGE_FORWARDED,
            message="Published message",
            metadata={'topic': message.topic, 'stream': stream}
        )

    def _prepare_export(self, entry: MappingEntry, payload: bytes) -> bytes:
        if self.export_preparer is None:
            raise ExportPreparationError(
                f"No export preparer for {type(entry.extension_sink).__name__}",
                stream=entry.destination_stream
            )
        return self.export_preparer(entry.extension_sink, payload)

    # ===== Statistics =====

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self._stats[name] += 1

    def get_stats(self) -> dict:
        with self._stats_lock:
            stats = dict(self._stats)
        stats['filters'] = len(self._index)
        stats['transport_attached'] = self._transport is not None
        stats['sink_attached'] = self._sink is not None
        return stats
