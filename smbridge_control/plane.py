"""
MQTTControlPlane - runtime control of the bridge over MQTT

Bounded Context: MQTT connection management + command reception
Responsibilities:
  - Own paho client, separate from the routed-traffic client
  - Receive JSON commands (QoS 1) and delegate to CommandRegistry
  - Publish retained status documents (QoS 1)

Topics:
  - smbridge/control/<service_id>/commands  (subscribe)
  - smbridge/control/<service_id>/status    (publish, retained)

Threading:
  - Callbacks and command handlers run in the paho network thread
"""

import json
import logging
from datetime import datetime
from threading import Event
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from .registry import CommandRegistry, CommandNotAvailableError, CommandExecutionError

logger = logging.getLogger(__name__)


def command_topic(service_id: str) -> str:
    return f"smbridge/control/{service_id}/commands"


def status_topic(service_id: str) -> str:
    return f"smbridge/control/{service_id}/status"


class MQTTControlPlane:
    """
    Control plane for a running bridge.

    Example:
        control_plane = MQTTControlPlane(
            broker_host="localhost",
            broker_port=1883,
            service_id="edge_01",
        )
        control_plane.command_registry.register('status', handler, "Report statistics")
        control_plane.connect(timeout=5.0)
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        service_id: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client: Optional[mqtt.Client] = None,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.service_id = service_id
        self.command_topic = command_topic(service_id)
        self.status_topic = status_topic(service_id)
        self.client_id = f"smbridge_control_{service_id}"

        self.client = client or mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            protocol=mqtt.MQTTv311,
        )
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        self.client.on_disconnect = self._on_disconnect

        if username and password:
            self.client.username_pw_set(username, password)

        self._connected = Event()
        self._running = False

        self.command_registry = CommandRegistry()
        self.command_registry.register('help', self._handle_help, "Publish the available commands")

    def _handle_help(self, command_data: Dict[str, Any]) -> None:
        self.publish_status("help", {"commands": self.command_registry.get_help()})

    def connect(self, timeout: float = 5.0) -> bool:
        """
        Connect to MQTT broker with timeout.

        Returns:
            True if connected successfully, False otherwise
        """
        try:
            logger.info(f"🔌 Connecting control plane: {self.broker_host}:{self.broker_port}")
            self.client.connect(self.broker_host, self.broker_port, keepalive=60)
        except OSError as e:
            logger.error(f"❌ Error connecting to MQTT: {e}")
            return False

        self.client.loop_start()
        self._running = True

        if self._connected.wait(timeout=timeout):
            logger.info("✅ MQTT Control Plane connected")
            return True
        logger.error(f"❌ Connection timeout after {timeout}s")
        return False

    def disconnect(self) -> None:
        """Disconnect from MQTT broker. Safe to call multiple times."""
        if self._running:
            self.publish_status("disconnected")
            self.client.loop_stop()
            self.client.disconnect()
            self._running = False
            self._connected.clear()
            logger.info("✅ MQTT Control Plane disconnected")

    def publish_status(self, status: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Publish a retained status document."""
        message = {
            "status": status,
            "timestamp": datetime.now().isoformat(),
            "service_id": self.service_id,
        }
        if details:
            message["details"] = details

        info = self.client.publish(
            self.status_topic,
            json.dumps(message, default=str),
            qos=1,
            retain=True,
        )
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.warning(f"⚠️ Status publish failed (rc={info.rc})")
        else:
            logger.debug(f"📤 Status published: {status}")

    # ===== MQTT Callbacks (run in MQTT thread) =====

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.error(f"❌ Connection failed (rc={reason_code})")
            self._connected.clear()
            return

        client.subscribe(self.command_topic, qos=1)
        logger.info(f"📥 Subscribed to: {self.command_topic} (QoS 1)")
        self.publish_status("connected")
        self._connected.set()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.warning(f"⚠️ Unexpected disconnection (rc={reason_code})")
        self._connected.clear()

    def _on_message(self, client, userdata, msg):
        """Decode one command and run it. Keep handlers fast."""
        try:
            command_data = json.loads(msg.payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"❌ Error decoding command: {msg.payload!r} ({e})")
            return

        if not isinstance(command_data, dict):
            logger.warning("⚠️ Command must be a JSON object")
            return

        command = str(command_data.get('command', '')).lower()
        if not command:
            logger.warning("⚠️ Empty command received")
            return

        logger.info(f"🎯 Executing command: {command}")
        try:
            self.command_registry.execute(command, command_data)
        except CommandNotAvailableError as e:
            logger.warning(f"⚠️ {e}")
        except CommandExecutionError as e:
            logger.error(f"❌ {e}")
            self.publish_status("error", {"command": command, "error": str(e.cause)})
