"""
MQTT client wrapper for sending commands to a running bridge.
"""

import json
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt


class MQTTCommandClient:
    """
    One-shot publisher for control-plane commands (QoS 1).
    """

    def __init__(
        self,
        broker: str = "localhost",
        port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None
    ):
        self.broker = broker
        self.port = port

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        if username and password:
            self.client.username_pw_set(username, password)

    def send_command(
        self,
        topic: str,
        command: Dict[str, Any],
        qos: int = 1,
        timeout: float = 5.0
    ) -> None:
        """
        Publish one command and wait for it to leave.

        Raises:
            ConnectionError: If unable to connect to MQTT broker
            ValueError: If the command cannot be serialized
        """
        try:
            payload = json.dumps(command)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid command data: {e}") from e

        try:
            self.client.connect(self.broker, self.port, keepalive=60)
        except OSError as e:
            raise ConnectionError(
                f"Unable to connect to MQTT broker at {self.broker}:{self.port}. "
                "Is mosquitto running?"
            ) from e

        self.client.loop_start()
        try:
            info = self.client.publish(topic, payload, qos=qos)
            info.wait_for_publish(timeout=timeout)
        finally:
            self.client.loop_stop()
            self.client.disconnect()

        print(f"✅ Command sent: {command.get('command', 'unknown')}")
