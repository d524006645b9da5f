"""
Structured Log Event Types
==========================

Bounded Context: Observability Event Taxonomy

Typed event names for the bridge's structured logs.

Event Naming Convention:
    <component>.<category>.<action>

    component: mqtt, routing, stream, error
    category: message, mapping, subscriptions
    action: received, forwarded, updated

Example Log Query (CloudWatch Insights):
    fields @timestamp, event, metadata.stream
    | filter event = "routing.message.forwarded"
    | stats count() by metadata.stream
"""

from enum import Enum


class LogEvent(str, Enum):
    """
    Typed log event names for structured logging.

    Categories:
    - mqtt.*: Local broker interactions
    - routing.*: Mapping and dispatch
    - stream.*: Stream sink interactions
    - error.*: Error conditions
    """

    # ========== MQTT Events ==========
    MQTT_CONNECTED = "mqtt.connected"
    """MQTT broker connection established."""

    MQTT_DISCONNECTED = "mqtt.disconnected"
    """MQTT broker connection lost."""

    MQTT_SUBSCRIBED = "mqtt.subscribed"
    """Topic filter subscribed on the broker."""

    MQTT_UNSUBSCRIBED = "mqtt.unsubscribed"
    """Topic filter removed from the broker subscriptions."""

    MQTT_MESSAGE_RECEIVED = "mqtt.message.received"
    """Inbound message delivered by the broker."""

    # ========== Routing Events ==========
    MAPPING_UPDATED = "routing.mapping.updated"
    """Topic mapping replaced and routing index rebuilt."""

    SUBSCRIPTIONS_UPDATED = "routing.subscriptions.updated"
    """Complete subscription set handed to the transport."""

    MESSAGE_FORWARDED = "routing.message.forwarded"
    """Message published to a destination stream."""

    MESSAGE_UNROUTED = "routing.message.unrouted"
    """Message matched no configured filter."""

    # ========== Stream Events ==========
    STREAM_CREATED = "stream.created"
    """Destination stream created on first use."""

    STREAM_APPENDED = "stream.appended"
    """Payload appended to a stream."""

    # ========== Error Events ==========
    MQTT_CONNECTION_ERROR = "error.mqtt_connection"
    """Failed to connect to MQTT broker."""

    MQTT_SUBSCRIPTION_ERROR = "error.mqtt_subscription"
    """Broker rejected a subscribe or unsubscribe request."""

    SINK_PUBLISH_ERROR = "error.sink_publish"
    """Stream sink rejected a publish or stream creation."""

    ENVELOPE_OVERFLOW_ERROR = "error.envelope_overflow"
    """Envelope metadata exceeded the length prefix capacity."""

    CONFIGURATION_ERROR = "error.configuration"
    """Mapping or configuration rejected."""

    EXPORT_ERROR = "error.export"
    """Extension sink payload could not be prepared."""

    HANDLER_ERROR = "error.handler"
    """Message handler raised inside the transport thread."""


# Event categories for filtering
MQTT_EVENTS = {
    LogEvent.MQTT_CONNECTED,
    LogEvent.MQTT_DISCONNECTED,
    LogEvent.MQTT_SUBSCRIBED,
    LogEvent.MQTT_UNSUBSCRIBED,
    LogEvent.MQTT_MESSAGE_RECEIVED,
}

ROUTING_EVENTS = {
    LogEvent.MAPPING_UPDATED,
    LogEvent.SUBSCRIPTIONS_UPDATED,
    LogEvent.MESSAGE_FORWARDED,
    LogEvent.MESSAGE_UNROUTED,
}

STREAM_EVENTS = {
    LogEvent.STREAM_CREATED,
    LogEvent.STREAM_APPENDED,
}

ERROR_EVENTS = {
    LogEvent.MQTT_CONNECTION_ERROR,
    LogEvent.MQTT_SUBSCRIPTION_ERROR,
    LogEvent.SINK_PUBLISH_ERROR,
    LogEvent.ENVELOPE_OVERFLOW_ERROR,
    LogEvent.CONFIGURATION_ERROR,
    LogEvent.EXPORT_ERROR,
    LogEvent.HANDLER_ERROR,
}
