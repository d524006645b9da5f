"""
Bridge Service - wires the routing engine to its collaborators.

Components:
- TopicMapping: mapping store (initial content from config)
- MessageBridge: routing engine
- StreamClient + FileStreamBackend: stream sink
- MQTTClient: local broker transport
- MQTTControlPlane: runtime commands (optional)

Threading Model:
- paho network thread of MQTTClient (message delivery → handle_message)
- paho network thread of the control plane (update_mapping → replace)
- Main thread: setup/start/stop only
"""

import logging
import threading
from typing import Any, Dict, Optional

from smbridge_control import MQTTControlPlane
from smbridge_mqtt import LogEvent, MQTTClient, create_logger
from smbridge_routing import InvalidConfigurationError, MessageBridge, TopicMapping, parse_mapping
from smbridge_stream import ExportPreparer, FileStreamBackend, StreamClient

from .config import BridgeConfig

logger = logging.getLogger(__name__)


class BridgeService:
    """
    Bridge service lifecycle.

    Usage:
        config = BridgeConfig.from_yaml(Path("bridge.yaml"))
        service = BridgeService(config)
        service.setup()
        service.start()   # connects, subscribes
        ...
        service.stop()
    """

    def __init__(
        self,
        config: BridgeConfig,
        mqtt_client: Optional[MQTTClient] = None,
        control_plane: Optional[MQTTControlPlane] = None,
    ):
        self.config = config

        self.topic_mapping: Optional[TopicMapping] = None
        self.bridge: Optional[MessageBridge] = None
        self.stream_client: Optional[StreamClient] = None
        self.mqtt_client = mqtt_client
        self.control_plane = control_plane

        self._running = False
        self._stopped_event = threading.Event()

    def setup(self) -> None:
        """
        Build components and install the configured mapping.

        Must be called before start().
        """
        self.topic_mapping = TopicMapping()
        self.bridge = MessageBridge(
            self.topic_mapping,
            logger=create_logger("bridge").bind(service_id=self.config.service_id),
            export_preparer=ExportPreparer(self.config.export_dir),
        )
        self.topic_mapping.replace(self.config.mqtt_stream_mapping)

        self.stream_client = StreamClient(
            FileStreamBackend(self.config.streams_dir),
            definitions=self.config.stream_definitions,
            logger=create_logger("stream").bind(service_id=self.config.service_id),
        )
        self.bridge.attach_sink(self.stream_client)

        mqtt_config = self.config.mqtt_config
        if self.mqtt_client is None:
            self.mqtt_client = MQTTClient(
                broker_host=mqtt_config.broker,
                broker_port=mqtt_config.port,
                client_id=mqtt_config.client_id,
                username=mqtt_config.username,
                password=mqtt_config.password,
                qos=mqtt_config.qos,
                keepalive=mqtt_config.keepalive,
                logger=create_logger("mqtt").bind(service_id=self.config.service_id),
            )

        if self.config.control_enabled and self.control_plane is None:
            self.control_plane = MQTTControlPlane(
                broker_host=mqtt_config.broker,
                broker_port=mqtt_config.port,
                service_id=self.config.service_id,
                username=mqtt_config.username,
                password=mqtt_config.password,
            )
        if self.control_plane is not None:
            self._setup_control_handlers()

        logger.info(
            f"Bridge setup complete (service_id={self.config.service_id}, "
            f"entries={len(self.config.mqtt_stream_mapping)})"
        )

    def _setup_control_handlers(self) -> None:
        registry = self.control_plane.command_registry
        registry.register(
            "update_mapping",
            self._handle_update_mapping,
            "Replace the topic mapping"
        )
        registry.register(
            "status",
            self._handle_status,
            "Publish bridge statistics"
        )

    def _handle_update_mapping(self, command_data: Dict[str, Any]) -> None:
        try:
            if not isinstance(command_data.get("mapping"), dict):
                raise InvalidConfigurationError(
                    "update_mapping needs a 'mapping' object", key="mapping"
                )
            entries = parse_mapping(command_data["mapping"])
            self.topic_mapping.replace(entries)
        except InvalidConfigurationError as e:
            self.bridge.logger.error(
                event=LogEvent.CONFIGURATION_ERROR,
                message="Rejected mapping update",
                exc_info=e,
                metadata={'key': e.key}
            )
            raise
        logger.info(f"Mapping updated via control plane ({len(entries)} entries)")
        self.control_plane.publish_status("mapping_updated", {"entries": len(entries)})

    def _handle_status(self, command_data: Dict[str, Any]) -> None:
        self.control_plane.publish_status(
            "running" if self._running else "stopped",
            self.get_stats()
        )

    def start(self, timeout: float = 10.0) -> None:
        """
        Connect to the broker and attach the transport.

        Raises:
            MQTTClientError: If the broker cannot be reached
        """
        self.mqtt_client.start(timeout=timeout)
        self.bridge.attach_transport(self.mqtt_client)

        if self.control_plane is not None:
            if not self.control_plane.connect(timeout=timeout):
                logger.warning("Control plane unavailable, continuing without it")

        self._stopped_event.clear()
        self._running = True
        logger.info("Bridge started")

    def stop(self) -> None:
        """Disconnect everything. Safe to call multiple times."""
        if not self._running:
            return
        self._running = False
        if self.control_plane is not None:
            self.control_plane.disconnect()
        self.mqtt_client.stop()
        self._stopped_event.set()
        logger.info(f"Bridge stopped: {self.get_stats()}")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until stop() is called. Returns False on timeout."""
        return self._stopped_event.wait(timeout)

    def is_running(self) -> bool:
        return self._running

    def get_stats(self) -> Dict[str, Any]:
        return {
            "bridge": self.bridge.get_stats() if self.bridge else {},
            "stream": self.stream_client.get_stats() if self.stream_client else {},
            "mqtt": self.mqtt_client.get_stats() if self.mqtt_client else {},
        }
