"""
MQTT Transport Client
=====================

Bounded Context: Message Consumption

Local-broker client used by the bridge. The routing engine hands it the
complete set of topic filters it wants; the client works out the
subscribe/unsubscribe delta against the broker.

Design:
- paho-mqtt network loop in a background thread (loop_start)
- Single message callback, replaced atomically on every update
- Desired set survives reconnects (re-subscribed in _on_connect)
- Callback failures are logged, never raised into the paho thread

Message Flow:
    Broker → MQTTClient._on_message → MQTTMessage → bridge callback

Example:
    >>> from smbridge_mqtt import MQTTClient, create_logger
    >>> client = MQTTClient(broker_host="localhost", logger=create_logger("mqtt"))
    >>> client.start()
    >>> client.update_subscriptions({"sensors/+/humidity"}, print)
    >>> # ... later ...
    >>> client.stop()
"""

import threading
from typing import Any, Callable, Iterable, Optional, Set

import paho.mqtt.client as mqtt

from .schemas import MQTTMessage
from .logging import StructuredLogger, LogEvent


MessageCallback = Callable[[MQTTMessage], None]


class MQTTClientError(Exception):
    """Raised when the client cannot reach or talk to the broker."""
    pass


class MQTTClient:
    """
    Subscription-managing MQTT client.

    Attributes:
        broker_host: MQTT broker hostname
        broker_port: MQTT broker port
        client_id: MQTT client identifier
        qos: Subscription Quality of Service
        logger: Structured logger instance

    Thread Safety:
        update_subscriptions() and the paho callbacks share
        _subscription_lock; message delivery reads the callback reference
        without locking.
    """

    def __init__(
        self,
        broker_host: str,
        logger: StructuredLogger,
        broker_port: int = 1883,
        client_id: str = "smbridge",
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 0,
        keepalive: int = 60,
        client: Optional[mqtt.Client] = None
    ):
        """
        Initialize MQTT client.

        Args:
            broker_host: MQTT broker hostname
            logger: Structured logger instance
            broker_port: MQTT broker port (default: 1883)
            client_id: MQTT client ID (default: smbridge)
            username: MQTT auth username (optional)
            password: MQTT auth password (optional)
            qos: Quality of Service for subscriptions (default: 0)
            keepalive: Keepalive interval in seconds
            client: Pre-built paho client (tests)
        """
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.client_id = client_id
        self.logger = logger
        self.qos = qos
        self.keepalive = keepalive

        self.client = client or mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id
        )
        if username and password:
            self.client.username_pw_set(username, password)

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        # Subscription state
        self._subscription_lock = threading.Lock()
        self._desired: Set[str] = set()
        self._subscribed: Set[str] = set()
        self._callback: Optional[MessageCallback] = None

        # Connection state
        self._connected = threading.Event()
        self._running = False
        self._stats_lock = threading.Lock()
        self._messages_received = 0

    # ===== Subscription management =====

    def update_subscriptions(
        self,
        topics: Iterable[str],
        on_message: MessageCallback
    ) -> None:
        """
        Replace the subscription set and the message callback.

        Args:
            topics: Complete desired set of topic filters
            on_message: Sole handler for messages on any of these filters

        The delta against the current broker subscriptions is applied
        immediately when connected, otherwise on the next connect.
        """
        desired = set(topics)
        with self._subscription_lock:
            self._callback = on_message
            self._desired = desired
            if self._connected.is_set():
                self._apply_delta()

    def _apply_delta(self) -> None:
        # Caller holds _subscription_lock
        for topic in sorted(self._subscribed - self._desired):
            result, _ = self.client.unsubscribe(topic)
            if result == mqtt.MQTT_ERR_SUCCESS:
                self._subscribed.discard(topic)
                self.logger.info(
                    event=LogEvent.MQTT_UNSUBSCRIBED,
                    message="Unsubscribed from topic",
                    metadata={'topic': topic}
                )
            else:
                self.logger.warning(
                    event=LogEvent.MQTT_SUBSCRIPTION_ERROR,
                    message=f"Unsubscribe failed (rc={result})",
                    metadata={'topic': topic}
                )

        for topic in sorted(self._desired - self._subscribed):
            result, _ = self.client.subscribe(topic, qos=self.qos)
            if result == mqtt.MQTT_ERR_SUCCESS:
                self._subscribed.add(topic)
                self.logger.info(
                    event=LogEvent.MQTT_SUBSCRIBED,
                    message="Subscribed to topic",
                    metadata={'topic': topic, 'qos': self.qos}
                )
            else:
                self.logger.warning(
                    event=LogEvent.MQTT_SUBSCRIPTION_ERROR,
                    message=f"Subscribe failed (rc={result})",
                    metadata={'topic': topic}
                )

    @property
    def subscriptions(self) -> Set[str]:
        """Snapshot of the filters currently subscribed on the broker."""
        with self._subscription_lock:
            return set(self._subscribed)

    # ===== paho callbacks (run in MQTT thread) =====

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None
    ) -> None:
        """
        Callback when connection established.

        Re-subscribes the whole desired set (clean session).
        """
        if reason_code.is_failure:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message=f"Failed to connect to broker (rc={reason_code})",
                metadata={'broker': f"{self.broker_host}:{self.broker_port}"}
            )
            return

        with self._subscription_lock:
            self._subscribed = set()
            self._connected.set()
            self._apply_delta()

        self.logger.info(
            event=LogEvent.MQTT_CONNECTED,
            message="Connected to MQTT broker",
            metadata={
                'broker': f"{self.broker_host}:{self.broker_port}",
                'client_id': self.client_id,
                'subscriptions': sorted(self._desired)
            }
        )

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None
    ) -> None:
        """Callback when disconnected from broker."""
        self._connected.clear()
        self.logger.warning(
            event=LogEvent.MQTT_DISCONNECTED,
            message="Disconnected from MQTT broker",
            metadata={
                'broker': f"{self.broker_host}:{self.broker_port}",
                'reason_code': str(reason_code)
            }
        )

    def _on_message(
        self,
        client: mqtt.Client,
        userdata: Any,
        msg: mqtt.MQTTMessage
    ) -> None:
        """
        Callback when message received.

        Wraps the paho message and invokes the registered handler.
        """
        with self._stats_lock:
            self._messages_received += 1

        callback = self._callback
        if callback is None:
            self.logger.warning(
                event=LogEvent.MQTT_MESSAGE_RECEIVED,
                message="Message received before any handler was registered",
                metadata={'topic': msg.topic}
            )
            return

        try:
            callback(MQTTMessage(topic=msg.topic, payload=bytes(msg.payload)))
        except Exception as e:
            self.logger.error(
                event=LogEvent.HANDLER_ERROR,
                message="Error handling message",
                exc_info=e,
                metadata={'topic': msg.topic}
            )

    # ===== Lifecycle =====

    def start(self, timeout: float = 10.0) -> None:
        """
        Connect and start the network loop.

        Args:
            timeout: Seconds to wait for the CONNACK

        Raises:
            MQTTClientError: If the broker is unreachable or times out
        """
        try:
            self.client.connect(self.broker_host, self.broker_port, keepalive=self.keepalive)
        except (OSError, ValueError) as e:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message="Failed to connect to broker",
                exc_info=e,
                metadata={'broker': f"{self.broker_host}:{self.broker_port}"}
            )
            raise MQTTClientError(
                f"Unable to connect to {self.broker_host}:{self.broker_port}"
            ) from e

        self.client.loop_start()
        self._running = True

        if not self._connected.wait(timeout=timeout):
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message="Connection timeout",
                metadata={'timeout': timeout}
            )
            self.stop()
            raise MQTTClientError(f"Connection timeout after {timeout}s")

    def stop(self) -> None:
        """Stop the network loop and disconnect."""
        if not self._running:
            return
        self._running = False
        self.client.loop_stop()
        self.client.disconnect()
        self._connected.clear()

        self.logger.info(
            event=LogEvent.MQTT_DISCONNECTED,
            message="MQTT client stopped",
            metadata=self.get_stats()
        )

    def is_connected(self) -> bool:
        """Check if currently connected to broker."""
        return self._connected.is_set()

    def get_stats(self) -> dict:
        """Message counts and connection status."""
        with self._stats_lock:
            received = self._messages_received
        return {
            'messages_received': received,
            'connected': self._connected.is_set(),
            'running': self._running,
            'subscriptions': sorted(self.subscriptions),
            'broker': f"{self.broker_host}:{self.broker_port}"
        }
