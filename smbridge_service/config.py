"""
Configuration schema for the bridge service.

Loaded from YAML and validated at startup; the topic mapping section is
parsed into MappingEntry values by smbridge_routing.parse_mapping.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from smbridge_routing import InvalidConfigurationError, MappingEntry, parse_mapping
from smbridge_stream import StreamDefinitions


@dataclass(frozen=True)
class MQTTConfig:
    """Local MQTT broker configuration."""

    broker: str = "localhost"
    port: int = 1883
    client_id: str = "smbridge"
    username: Optional[str] = None
    password: Optional[str] = None
    qos: int = 0
    keepalive: int = 60

    def __post_init__(self):
        """Validate MQTT configuration."""
        if not self.broker:
            raise InvalidConfigurationError("MQTT broker cannot be empty")

        if not 1 <= self.port <= 65535:
            raise InvalidConfigurationError(
                f"MQTT port must be in [1, 65535], got {self.port}"
            )

        if self.qos not in {0, 1, 2}:
            raise InvalidConfigurationError(
                f"MQTT QoS must be 0, 1, or 2, got {self.qos}"
            )

        if self.keepalive <= 0:
            raise InvalidConfigurationError(
                f"MQTT keepalive must be > 0, got {self.keepalive}"
            )


@dataclass(frozen=True)
class BridgeConfig:
    """
    Main configuration for the bridge service.

    Immutable after construction (frozen dataclass).
    """

    service_id: str
    mqtt_config: MQTTConfig = field(default_factory=MQTTConfig)
    mqtt_stream_mapping: Dict[str, MappingEntry] = field(default_factory=dict)
    stream_definitions: StreamDefinitions = field(default_factory=StreamDefinitions)
    streams_dir: Path = Path("./streams")
    export_dir: Path = Path("/tmp/sm-bridge")
    control_enabled: bool = True

    def __post_init__(self):
        """Validate bridge configuration."""
        if not self.service_id:
            raise InvalidConfigurationError("service_id cannot be empty")

        if self.streams_dir.exists() and not self.streams_dir.is_dir():
            raise InvalidConfigurationError(
                f"streams_dir must be a directory, got file: {self.streams_dir}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeConfig":
        if not isinstance(data, dict):
            raise InvalidConfigurationError("Configuration must be a YAML mapping")
        if "service_id" not in data:
            raise InvalidConfigurationError("Configuration is missing 'service_id'")

        mqtt_config_data = data.get("mqtt_config") or {}
        try:
            mqtt_config = MQTTConfig(**mqtt_config_data)
        except TypeError as e:
            raise InvalidConfigurationError(f"Invalid mqtt_config: {e}") from e

        return cls(
            service_id=data["service_id"],
            mqtt_config=mqtt_config,
            mqtt_stream_mapping=parse_mapping(data.get("mqtt_stream_mapping")),
            stream_definitions=StreamDefinitions.from_config(data.get("stream_definitions")),
            streams_dir=Path(data.get("streams_dir", "./streams")),
            export_dir=Path(data.get("export_dir", "/tmp/sm-bridge")),
            control_enabled=bool(data.get("control_enabled", True)),
        )

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "BridgeConfig":
        """
        Load configuration from YAML file.

        Example YAML:
            service_id: "edge_01"

            mqtt_config:
              broker: "localhost"
              port: 1883
              client_id: "smbridge_edge_01"

            mqtt_stream_mapping:
              humidity:
                topic: "sensors/+/humidity"
                stream: "Humidity"
                appendTime: true
              thermostat:
                topic: "sensors/thermostat1/#"
                stream: "Thermostat"
                appendTopic: true

            stream_definitions:
              default:
                strategyOnFull: "OverwriteOldestData"
                maxSize: 268435456

            streams_dir: "./streams"
            export_dir: "/tmp/sm-bridge"
        """
        try:
            with open(yaml_path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise InvalidConfigurationError(f"Invalid YAML in {yaml_path}: {e}") from e

        return cls.from_dict(data)
