"""
smbridge_service - Bridge service for local MQTT to stream routing

Architecture:
- BridgeConfig: YAML configuration
- BridgeService: component wiring and lifecycle
"""

from smbridge_service.config import BridgeConfig, MQTTConfig
from smbridge_service.service import BridgeService

__all__ = [
    "BridgeConfig",
    "MQTTConfig",
    "BridgeService",
]
