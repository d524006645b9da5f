"""
Stream backends - where stream records actually live.

StreamBackend is the surface StreamClient needs. FileStreamBackend keeps
one directory per stream:

    <root>/<stream>/definition.yaml
    <root>/<stream>/messages.bin     [4-byte BE length][payload] records

Streams with "Memory" persistence keep their records in process only.

Thread Safety:
    One lock per backend; appends are short.
"""

import os
import re
import struct
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Protocol

import yaml

from smbridge_routing.errors import InvalidConfigurationError

from .definitions import StreamDefinition, REJECT_NEW_DATA

_RECORD_HEADER = struct.Struct(">I")
_STREAM_NAME = re.compile(r"^(?!\.+$)[A-Za-z0-9 ,.\-_]{1,255}$")

DEFINITION_FILE = "definition.yaml"
MESSAGES_FILE = "messages.bin"


class StreamBackendError(Exception):
    """Raised by a backend when a stream operation fails."""
    pass


class StreamFullError(StreamBackendError):
    """Raised when a RejectNewData stream has no room for a record."""
    pass


class StreamBackend(Protocol):
    def has_stream(self, name: str) -> bool:
        ...

    def create_message_stream(self, definition: StreamDefinition) -> None:
        ...

    def append_message(self, name: str, payload: bytes) -> int:
        ...


@dataclass
class _StreamState:
    definition: StreamDefinition
    records: List[bytes] = field(default_factory=list)
    size: int = 0
    next_sequence: int = 0


def _record_size(payload: bytes) -> int:
    return _RECORD_HEADER.size + len(payload)


class FileStreamBackend:
    """
    Local persistent streams.

    Example:
        backend = FileStreamBackend(Path("./streams"))
        backend.create_message_stream(StreamDefinition(name="telemetry"))
        backend.append_message("telemetry", b"42")
        backend.read_messages("telemetry")   # [b"42"]
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._streams: Dict[str, _StreamState] = {}
        self._lock = threading.Lock()

    # ===== StreamBackend =====

    def has_stream(self, name: str) -> bool:
        with self._lock:
            return self._load(name) is not None

    def create_message_stream(self, definition: StreamDefinition) -> None:
        """
        Raises:
            StreamBackendError: If the name is invalid or the stream exists
        """
        self._validate_name(definition.name)
        with self._lock:
            if self._load(definition.name) is not None:
                raise StreamBackendError(f"Stream '{definition.name}' already exists")

            state = _StreamState(definition=definition)
            if definition.persistence == "File":
                directory = self._directory(definition.name)
                try:
                    directory.mkdir(parents=True, exist_ok=True)
                    with open(directory / DEFINITION_FILE, 'w') as f:
                        yaml.safe_dump(definition.to_dict(), f, sort_keys=False)
                    (directory / MESSAGES_FILE).touch()
                except OSError as e:
                    raise StreamBackendError(
                        f"Unable to create stream '{definition.name}': {e}"
                    ) from e
            self._streams[definition.name] = state

    def append_message(self, name: str, payload: bytes) -> int:
        """
        Append one record.

        Returns:
            Sequence number of the record

        Raises:
            StreamBackendError: Unknown stream or I/O failure
            StreamFullError: RejectNewData stream without room
        """
        with self._lock:
            state = self._load(name)
            if state is None:
                raise StreamBackendError(f"Stream '{name}' does not exist")

            definition = state.definition
            record_size = _record_size(payload)
            if record_size > definition.max_size:
                raise StreamFullError(
                    f"Record of {record_size} bytes exceeds max_size of stream '{name}'"
                )

            dropped = 0
            kept_size = state.size
            if kept_size + record_size > definition.max_size:
                if definition.strategy_on_full == REJECT_NEW_DATA:
                    raise StreamFullError(f"Stream '{name}' is full")
                while kept_size + record_size > definition.max_size:
                    kept_size -= _record_size(state.records[dropped])
                    dropped += 1
            kept = state.records[dropped:]

            if definition.persistence == "File":
                self._write(definition, kept, payload, rewrite=dropped > 0)

            # State changes only once the write succeeded
            state.records = kept + [bytes(payload)]
            state.size = kept_size + record_size
            sequence = state.next_sequence
            state.next_sequence += 1
            return sequence

    # ===== Inspection =====

    def read_messages(self, name: str) -> List[bytes]:
        with self._lock:
            state = self._load(name)
            if state is None:
                raise StreamBackendError(f"Stream '{name}' does not exist")
            return list(state.records)

    def list_streams(self) -> List[str]:
        with self._lock:
            on_disk = {p.name for p in self.root.iterdir() if (p / DEFINITION_FILE).exists()}
            return sorted(on_disk | set(self._streams))

    # ===== Internals (caller holds _lock) =====

    def _directory(self, name: str) -> Path:
        return self.root / name

    @staticmethod
    def _validate_name(name: str) -> None:
        if not _STREAM_NAME.match(name):
            raise StreamBackendError(f"Invalid stream name: {name!r}")

    def _load(self, name: str):
        state = self._streams.get(name)
        if state is not None:
            return state

        directory = self._directory(name)
        if not _STREAM_NAME.match(name) or not (directory / DEFINITION_FILE).exists():
            return None

        try:
            with open(directory / DEFINITION_FILE) as f:
                definition = StreamDefinition.from_dict(yaml.safe_load(f))
            records = self._read_records(directory / MESSAGES_FILE)
        except (OSError, yaml.YAMLError, InvalidConfigurationError) as e:
            raise StreamBackendError(f"Unable to load stream '{name}': {e}") from e

        state = _StreamState(
            definition=definition,
            records=records,
            size=sum(_record_size(r) for r in records),
            next_sequence=len(records),
        )
        self._streams[name] = state
        return state

    @staticmethod
    def _read_records(path: Path) -> List[bytes]:
        if not path.exists():
            return []
        data = path.read_bytes()
        records = []
        offset = 0
        while offset + _RECORD_HEADER.size <= len(data):
            (length,) = _RECORD_HEADER.unpack_from(data, offset)
            offset += _RECORD_HEADER.size
            if offset + length > len(data):
                break  # torn trailing record
            records.append(data[offset:offset + length])
            offset += length
        return records

    def _write(self, definition: StreamDefinition, kept: List[bytes], payload: bytes, rewrite: bool) -> None:
        name = definition.name
        path = self._directory(name) / MESSAGES_FILE
        try:
            if rewrite:
                tmp = path.with_suffix(".tmp")
                with open(tmp, 'wb') as f:
                    for record in kept:
                        f.write(_RECORD_HEADER.pack(len(record)))
                        f.write(record)
                    f.write(_RECORD_HEADER.pack(len(payload)))
                    f.write(payload)
                    self._flush(f, definition)
                os.replace(tmp, path)
            else:
                with open(path, 'ab') as f:
                    f.write(_RECORD_HEADER.pack(len(payload)))
                    f.write(payload)
                    self._flush(f, definition)
        except OSError as e:
            raise StreamBackendError(
                f"Unable to append to stream '{name}': {e}"
            ) from e

    @staticmethod
    def _flush(f, definition: StreamDefinition) -> None:
        if definition.flush_on_write:
            f.flush()
            os.fsync(f.fileno())
