"""
Stream definitions - how destination streams are created on first use.

A definition keyed "default" (any case) sets the policy for streams that
have no definition of their own.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from smbridge_routing.errors import InvalidConfigurationError

OVERWRITE_OLDEST_DATA = "OverwriteOldestData"
REJECT_NEW_DATA = "RejectNewData"
STRATEGIES = {OVERWRITE_OLDEST_DATA, REJECT_NEW_DATA}
PERSISTENCE_MODES = {"File", "Memory"}

DEFAULT_STREAM_NAME = "mqttToStreamDefaultStreamName"


@dataclass(frozen=True)
class StreamDefinition:
    """Creation parameters of one message stream."""

    name: str = DEFAULT_STREAM_NAME
    max_size: int = 268435456  # 256 MiB
    stream_segment_size: int = 16777216  # 16 MiB
    time_to_live_millis: Optional[int] = None
    strategy_on_full: str = OVERWRITE_OLDEST_DATA
    persistence: str = "File"
    flush_on_write: bool = False

    def __post_init__(self):
        """Validate stream definition."""
        if not self.name:
            raise InvalidConfigurationError("Stream definition name cannot be empty")
        if self.max_size <= 0:
            raise InvalidConfigurationError(
                f"Stream '{self.name}' max_size must be > 0, got {self.max_size}"
            )
        if not 0 < self.stream_segment_size <= self.max_size:
            raise InvalidConfigurationError(
                f"Stream '{self.name}' stream_segment_size must be in (0, max_size], "
                f"got {self.stream_segment_size}"
            )
        if self.time_to_live_millis is not None and self.time_to_live_millis <= 0:
            raise InvalidConfigurationError(
                f"Stream '{self.name}' time_to_live_millis must be > 0"
            )
        if self.strategy_on_full not in STRATEGIES:
            raise InvalidConfigurationError(
                f"Invalid strategy_on_full: {self.strategy_on_full}. "
                f"Must be one of {sorted(STRATEGIES)}"
            )
        if self.persistence not in PERSISTENCE_MODES:
            raise InvalidConfigurationError(
                f"Invalid persistence: {self.persistence}. "
                f"Must be one of {sorted(PERSISTENCE_MODES)}"
            )

    def renamed(self, name: str) -> 'StreamDefinition':
        return replace(self, name=name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'maxSize': self.max_size,
            'streamSegmentSize': self.stream_segment_size,
            'timeToLiveMillis': self.time_to_live_millis,
            'strategyOnFull': self.strategy_on_full,
            'persistence': self.persistence,
            'flushOnWrite': self.flush_on_write,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StreamDefinition':
        """
        Build from configuration keys (camelCase, as in the mapping config).

        Raises:
            InvalidConfigurationError: If keys are unknown or values invalid
        """
        if not isinstance(data, dict):
            raise InvalidConfigurationError("Stream definition must be an object")
        known = {
            'name': 'name',
            'maxSize': 'max_size',
            'streamSegmentSize': 'stream_segment_size',
            'timeToLiveMillis': 'time_to_live_millis',
            'ttl': 'time_to_live_millis',
            'strategyOnFull': 'strategy_on_full',
            'persistence': 'persistence',
            'flushOnWrite': 'flush_on_write',
        }
        unknown = set(data) - set(known)
        if unknown:
            raise InvalidConfigurationError(
                f"Unknown stream definition keys: {sorted(unknown)}"
            )
        return cls(**{known[k]: v for k, v in data.items()})


class StreamDefinitions:
    """
    Named stream definitions plus the default policy.

    Example:
        definitions = StreamDefinitions.from_config({
            "default": {"strategyOnFull": "OverwriteOldestData"},
            "alerts": {"name": "Alerts", "maxSize": 1048576, "streamSegmentSize": 65536},
        })
        definitions.definition_for("Alerts").max_size   # 1048576
        definitions.definition_for("Other").name        # "Other"
    """

    def __init__(self, streams: Optional[Dict[str, StreamDefinition]] = None):
        self.streams = dict(streams or {})
        self.default = self._resolve_default()

    def _resolve_default(self) -> StreamDefinition:
        for key, definition in self.streams.items():
            if key.lower() == "default":
                return definition
        return StreamDefinition(strategy_on_full=REJECT_NEW_DATA)

    @classmethod
    def from_config(cls, raw: Optional[Dict[str, Any]]) -> 'StreamDefinitions':
        if not raw:
            return cls()
        if not isinstance(raw, dict):
            raise InvalidConfigurationError("stream_definitions must be an object")
        streams = {}
        for key, value in raw.items():
            if isinstance(value, dict) and 'name' not in value and key.lower() != "default":
                value = {'name': key, **value}
            streams[key] = StreamDefinition.from_dict(value)
        return cls(streams)

    def find(self, stream: str) -> Optional[StreamDefinition]:
        for definition in self.streams.values():
            if definition.name == stream:
                return definition
        return None

    def definition_for(self, stream: str) -> StreamDefinition:
        """Named definition for `stream`, else the default renamed."""
        return self.find(stream) or self.default.renamed(stream)
