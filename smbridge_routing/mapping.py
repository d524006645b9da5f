"""
Topic Mapping - routing rules and the mapping store.

A mapping snapshot is a read-only dict from an arbitrary unique key to a
MappingEntry. Several entries may share a topic filter (fan-out) or a
destination stream.

Thread Safety:
- replace() swaps the snapshot reference under a lock, then notifies
  observers outside of it
- current() reads the reference without locking (atomic in CPython)
- observers list is append-only
"""

import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .errors import InvalidConfigurationError
from .topics import filter_errors


@dataclass(frozen=True)
class S3Export:
    """Export destination: payload staged to a file and exported to S3."""
    bucket: str
    key: str


@dataclass(frozen=True)
class SiteWiseExport:
    """Export destination: payload sent as a SiteWise property value."""
    property_alias: str


ExtensionSink = Union[S3Export, SiteWiseExport]


@dataclass(frozen=True)
class MappingEntry:
    """
    One routing rule.

    Attributes:
        topic_filter: Topic filter ('+' and '#' wildcards allowed)
        destination_stream: Output stream name
        include_timestamp: Add a timestamp to the envelope metadata
        include_topic: Add the source topic to the envelope metadata
        extension_sink: Optional export target, passed through untouched

    Example:
        >>> MappingEntry("sensors/+/humidity", "humidity", include_topic=True)
    """
    topic_filter: str
    destination_stream: str
    include_timestamp: bool = False
    include_topic: bool = False
    extension_sink: Optional[ExtensionSink] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], key: Optional[str] = None) -> 'MappingEntry':
        """
        Build an entry from its configuration form.

        Keys: topic, stream, appendTime, appendTopic, s3Export
        ({s3Bucket, s3Key}), siteWisePropertyAlias.

        Raises:
            InvalidConfigurationError: If the entry is malformed
        """
        label = f"Mapping entry '{key}'" if key is not None else "Mapping entry"

        if not isinstance(data, dict):
            raise InvalidConfigurationError(f"{label} must be an object", key=key)

        topic_filter = data.get('topic')
        if not isinstance(topic_filter, str):
            raise InvalidConfigurationError(f"{label} is missing 'topic'", key=key)
        errors = filter_errors(topic_filter)
        if errors:
            raise InvalidConfigurationError(
                f"{label} has invalid topic filter '{topic_filter}': {'; '.join(errors)}",
                key=key
            )

        stream = data.get('stream')
        if not isinstance(stream, str) or not stream:
            raise InvalidConfigurationError(f"{label} is missing 'stream'", key=key)

        flags = {}
        for name in ('appendTime', 'appendTopic'):
            value = data.get(name, False)
            if not isinstance(value, bool):
                raise InvalidConfigurationError(
                    f"{label} '{name}' must be a boolean, got {value!r}", key=key
                )
            flags[name] = value

        return cls(
            topic_filter=topic_filter,
            destination_stream=stream,
            include_timestamp=flags['appendTime'],
            include_topic=flags['appendTopic'],
            extension_sink=_extension_from_dict(data, label, key),
        )


def _extension_from_dict(data: Dict[str, Any], label: str, key: Optional[str]) -> Optional[ExtensionSink]:
    s3 = data.get('s3Export')
    if s3:
        if not isinstance(s3, dict) or not s3.get('s3Bucket') or not s3.get('s3Key'):
            raise InvalidConfigurationError(
                f"{label} 's3Export' needs non-empty 's3Bucket' and 's3Key'", key=key
            )
        return S3Export(bucket=s3['s3Bucket'], key=s3['s3Key'])

    alias = data.get('siteWisePropertyAlias')
    if alias:
        if not isinstance(alias, str):
            raise InvalidConfigurationError(
                f"{label} 'siteWisePropertyAlias' must be a string", key=key
            )
        return SiteWiseExport(property_alias=alias)

    return None


def parse_mapping(raw: Optional[Dict[str, Any]]) -> Dict[str, MappingEntry]:
    """
    Parse a configuration mapping (key -> entry dict) into MappingEntry values.

    Example YAML:
        mqtt_stream_mapping:
          humidity:
            topic: "sensors/+/humidity"
            stream: "humidity"
            appendTopic: true
          thermostat:
            topic: "sensors/thermostat1/#"
            stream: "thermostat"

    Raises:
        InvalidConfigurationError: If the mapping or any entry is malformed
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise InvalidConfigurationError(
            f"Mapping must be an object of key -> entry, got {type(raw).__name__}"
        )
    entries = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not key:
            raise InvalidConfigurationError(f"Mapping key must be a non-empty string, got {key!r}")
        entries[key] = MappingEntry.from_dict(value, key=key)
    return entries


class TopicMapping:
    """
    Holds the current mapping snapshot and notifies observers on replace.

    Usage:
        mapping = TopicMapping()
        mapping.subscribe(bridge.on_configuration_changed)
        mapping.replace({"m1": MappingEntry("mqtt/topic", "Stream1")})
        mapping.current()["m1"].destination_stream  # "Stream1"
    """

    def __init__(self):
        self._snapshot: Mapping[str, MappingEntry] = MappingProxyType({})
        self._observers: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    def replace(self, snapshot: Mapping[str, MappingEntry]) -> None:
        """
        Install a new snapshot, then invoke every observer.

        Args:
            snapshot: Mapping of unique key -> MappingEntry

        Raises:
            InvalidConfigurationError: If the snapshot is None or malformed;
                the previous snapshot is kept
        """
        if snapshot is None:
            raise InvalidConfigurationError("Mapping snapshot cannot be None")
        if not isinstance(snapshot, Mapping):
            raise InvalidConfigurationError(
                f"Mapping snapshot must be a mapping, got {type(snapshot).__name__}"
            )
        for key, entry in snapshot.items():
            if not isinstance(entry, MappingEntry):
                raise InvalidConfigurationError(
                    f"Mapping entry '{key}' is not a MappingEntry", key=key
                )

        frozen = MappingProxyType(dict(snapshot))
        with self._lock:
            self._snapshot = frozen
            observers = list(self._observers)

        for observer in observers:
            observer()

    def current(self) -> Mapping[str, MappingEntry]:
        """Present snapshot (empty before the first replace)."""
        return self._snapshot

    def entries(self) -> List[MappingEntry]:
        return list(self._snapshot.values())

    def subscribe(self, observer: Callable[[], None]) -> None:
        """Register a zero-argument callback invoked after every replace."""
        with self._lock:
            self._observers.append(observer)
