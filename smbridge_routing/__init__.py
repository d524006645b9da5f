"""
smbridge_routing - Routing and framing engine

Bounded Context: Topic-to-stream routing
Responsibilities:
  - Mapping snapshots and their store (TopicMapping)
  - Topic filter matching ('+', '#')
  - Routing index derivation and subscription set
  - Envelope framing ([len][metadata][payload])

Architecture:
  TopicMapping.replace() → MessageBridge.on_configuration_changed()
      → RoutingIndex.build() → transport.update_subscriptions()
  transport → MessageBridge.handle_message() → frame() → sink.publish()
"""

from .errors import (
    BridgeError,
    InvalidConfigurationError,
    SinkPublishError,
    ExportPreparationError,
    EnvelopeOverflowError,
)
from .topics import is_matched, is_valid_filter, filter_errors
from .mapping import (
    MappingEntry,
    S3Export,
    SiteWiseExport,
    TopicMapping,
    parse_mapping,
)
from .envelope import Metadata, frame
from .index import RoutingIndex
from .bridge import MessageBridge, RESERVED_TOPIC

__all__ = [
    # Errors
    "BridgeError",
    "InvalidConfigurationError",
    "SinkPublishError",
    "ExportPreparationError",
    "EnvelopeOverflowError",
    # Topics
    "is_matched",
    "is_valid_filter",
    "filter_errors",
    # Mapping
    "MappingEntry",
    "S3Export",
    "SiteWiseExport",
    "TopicMapping",
    "parse_mapping",
    # Envelope
    "Metadata",
    "frame",
    # Engine
    "RoutingIndex",
    "MessageBridge",
    "RESERVED_TOPIC",
]
