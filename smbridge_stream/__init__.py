"""
smbridge_stream - Stream sink side of the bridge

Architecture:
- StreamDefinition / StreamDefinitions: stream creation policy
- FileStreamBackend: local persistent streams
- StreamClient: create-on-first-use + append, raises SinkPublishError
- ExportPreparer: S3 / SiteWise export payloads for extension sinks
"""

from .definitions import StreamDefinition, StreamDefinitions
from .backends import (
    StreamBackend,
    StreamBackendError,
    StreamFullError,
    FileStreamBackend,
)
from .client import StreamClient
from .exports import ExportPreparer

__all__ = [
    "StreamDefinition",
    "StreamDefinitions",
    "StreamBackend",
    "StreamBackendError",
    "StreamFullError",
    "FileStreamBackend",
    "StreamClient",
    "ExportPreparer",
]
