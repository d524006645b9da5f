"""
smbridge_control - Control Plane for the bridge

Bounded Context: MQTT-based command-and-control
Responsibilities:
  - Control-plane MQTT connection (separate client from routed traffic)
  - Command registration and validation
  - Runtime mapping updates and status reports

Commands (registered by BridgeService):
  - update_mapping: replace the topic mapping
  - status: publish bridge statistics
  - help: publish the registered commands (built in)
"""

from .registry import CommandRegistry, CommandNotAvailableError, CommandExecutionError
from .plane import MQTTControlPlane, command_topic, status_topic

__all__ = [
    "CommandRegistry",
    "CommandNotAvailableError",
    "CommandExecutionError",
    "MQTTControlPlane",
    "command_topic",
    "status_topic",
]
