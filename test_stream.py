"""
Test stream sink: definitions, file backend, client and exports
===============================================================

Usage:
    pytest test_stream.py
"""

import json
import os

import pytest
import yaml

from smbridge_mqtt import create_logger
from smbridge_routing import InvalidConfigurationError, S3Export, SinkPublishError, SiteWiseExport
from smbridge_stream import (
    ExportPreparer,
    FileStreamBackend,
    StreamBackendError,
    StreamClient,
    StreamDefinition,
    StreamDefinitions,
    StreamFullError,
)
from smbridge_stream.definitions import OVERWRITE_OLDEST_DATA, REJECT_NEW_DATA


# ─────────────────────────────────────────────────────────────────────────────
# Definitions
# ─────────────────────────────────────────────────────────────────────────────

def test_default_definition_without_config_rejects_new_data():
    definitions = StreamDefinitions()

    definition = definitions.definition_for("Telemetry")

    assert definition.name == "Telemetry"
    assert definition.strategy_on_full == REJECT_NEW_DATA
    assert definition.max_size == 268435456
    assert definition.stream_segment_size == 16777216


def test_definitions_from_config():
    definitions = StreamDefinitions.from_config({
        "Default": {"strategyOnFull": "OverwriteOldestData"},
        "Alerts": {"maxSize": 1024, "streamSegmentSize": 512, "ttl": 60000},
    })

    alerts = definitions.definition_for("Alerts")
    assert alerts.max_size == 1024
    assert alerts.time_to_live_millis == 60000

    other = definitions.definition_for("Other")
    assert other.name == "Other"
    assert other.strategy_on_full == OVERWRITE_OLDEST_DATA


@pytest.mark.parametrize("raw", [
    {"s": {"maxSize": 0}},
    {"s": {"maxSize": 10, "streamSegmentSize": 20}},
    {"s": {"strategyOnFull": "DropEverything"}},
    {"s": {"persistence": "Cloud"}},
    {"s": {"unknownKey": 1}},
])
def test_invalid_definitions(raw):
    with pytest.raises(InvalidConfigurationError):
        StreamDefinitions.from_config(raw)


def test_definition_dict_form():
    definition = StreamDefinition(name="S", max_size=2048, stream_segment_size=1024)

    assert StreamDefinition.from_dict(definition.to_dict()) == definition


# ─────────────────────────────────────────────────────────────────────────────
# FileStreamBackend
# ─────────────────────────────────────────────────────────────────────────────

def test_backend_persists_records(tmp_path):
    backend = FileStreamBackend(tmp_path)
    backend.create_message_stream(StreamDefinition(name="telemetry"))

    assert backend.append_message("telemetry", b"one") == 0
    assert backend.append_message("telemetry", b"two") == 1

    with open(tmp_path / "telemetry" / "definition.yaml") as f:
        assert yaml.safe_load(f)["name"] == "telemetry"

    reopened = FileStreamBackend(tmp_path)
    assert reopened.has_stream("telemetry")
    assert reopened.read_messages("telemetry") == [b"one", b"two"]
    assert reopened.append_message("telemetry", b"three") == 2
    assert reopened.list_streams() == ["telemetry"]


def test_backend_rejects_duplicate_and_invalid_names(tmp_path):
    backend = FileStreamBackend(tmp_path)
    backend.create_message_stream(StreamDefinition(name="s"))

    with pytest.raises(StreamBackendError):
        backend.create_message_stream(StreamDefinition(name="s"))
    with pytest.raises(StreamBackendError):
        backend.create_message_stream(StreamDefinition(name="../escape"))
    with pytest.raises(StreamBackendError):
        backend.append_message("missing", b"x")


def test_backend_ignores_dot_names(tmp_path):
    root = tmp_path / "streams"
    backend = FileStreamBackend(root)
    for directory in (tmp_path, root):
        (directory / "definition.yaml").write_text(yaml.safe_dump({"name": "outside"}))

    assert not backend.has_stream("..")
    assert not backend.has_stream(".")
    for name in (".", "..", "..."):
        with pytest.raises(StreamBackendError):
            backend.create_message_stream(StreamDefinition(name=name))
    with pytest.raises(StreamBackendError):
        backend.append_message("..", b"x")
    assert backend.list_streams() == []


def test_reject_new_data_when_full(tmp_path):
    backend = FileStreamBackend(tmp_path)
    # Each 4-byte payload takes 8 bytes with its length header
    backend.create_message_stream(StreamDefinition(
        name="small", max_size=16, stream_segment_size=16, strategy_on_full=REJECT_NEW_DATA
    ))
    backend.append_message("small", b"aaaa")
    backend.append_message("small", b"bbbb")

    with pytest.raises(StreamFullError):
        backend.append_message("small", b"cccc")

    assert backend.read_messages("small") == [b"aaaa", b"bbbb"]


def test_overwrite_oldest_data_when_full(tmp_path):
    backend = FileStreamBackend(tmp_path)
    backend.create_message_stream(StreamDefinition(
        name="ring", max_size=16, stream_segment_size=16, strategy_on_full=OVERWRITE_OLDEST_DATA
    ))
    for payload in (b"aaaa", b"bbbb", b"cccc"):
        backend.append_message("ring", payload)

    assert backend.read_messages("ring") == [b"bbbb", b"cccc"]
    assert FileStreamBackend(tmp_path).read_messages("ring") == [b"bbbb", b"cccc"]


def test_overwrite_keeps_records_when_write_fails(tmp_path, monkeypatch):
    backend = FileStreamBackend(tmp_path)
    backend.create_message_stream(StreamDefinition(
        name="ring", max_size=16, stream_segment_size=16, strategy_on_full=OVERWRITE_OLDEST_DATA
    ))
    backend.append_message("ring", b"aaaa")
    backend.append_message("ring", b"bbbb")

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", failing_replace)
    with pytest.raises(StreamBackendError):
        backend.append_message("ring", b"cccc")

    assert backend.read_messages("ring") == [b"aaaa", b"bbbb"]
    assert FileStreamBackend(tmp_path).read_messages("ring") == [b"aaaa", b"bbbb"]

    monkeypatch.undo()
    assert backend.append_message("ring", b"cccc") == 2
    assert backend.read_messages("ring") == [b"bbbb", b"cccc"]
    assert FileStreamBackend(tmp_path).read_messages("ring") == [b"bbbb", b"cccc"]


def test_memory_stream_is_not_written(tmp_path):
    backend = FileStreamBackend(tmp_path)
    backend.create_message_stream(StreamDefinition(name="volatile", persistence="Memory"))
    backend.append_message("volatile", b"x")

    assert backend.read_messages("volatile") == [b"x"]
    assert not (tmp_path / "volatile").exists()


# ─────────────────────────────────────────────────────────────────────────────
# StreamClient
# ─────────────────────────────────────────────────────────────────────────────

def test_client_creates_stream_on_first_publish(tmp_path):
    backend = FileStreamBackend(tmp_path)
    client = StreamClient(backend, logger=create_logger("test"))

    client.publish("Humidity", b"42")
    client.publish("Humidity", b"43")

    assert backend.read_messages("Humidity") == [b"42", b"43"]
    assert client.get_stats() == {'messages_appended': 2, 'streams_created': 1}


def test_client_uses_named_definition(tmp_path):
    backend = FileStreamBackend(tmp_path)
    definitions = StreamDefinitions.from_config({"Alerts": {"maxSize": 4096, "streamSegmentSize": 1024}})
    client = StreamClient(backend, definitions=definitions, logger=create_logger("test"))

    client.publish("Alerts", b"x")

    with open(tmp_path / "Alerts" / "definition.yaml") as f:
        assert yaml.safe_load(f)["maxSize"] == 4096


def test_client_wraps_backend_errors(tmp_path):
    backend = FileStreamBackend(tmp_path)
    definitions = StreamDefinitions.from_config({
        "default": {"maxSize": 8, "streamSegmentSize": 8, "strategyOnFull": "RejectNewData"},
    })
    client = StreamClient(backend, definitions=definitions, logger=create_logger("test"))
    client.publish("tiny", b"aaaa")

    with pytest.raises(SinkPublishError) as excinfo:
        client.publish("tiny", b"bbbb")
    assert excinfo.value.stream == "tiny"

    with pytest.raises(SinkPublishError):
        client.publish("bad/name", b"x")


# ─────────────────────────────────────────────────────────────────────────────
# ExportPreparer
# ─────────────────────────────────────────────────────────────────────────────

def test_s3_export_stages_file(tmp_path):
    preparer = ExportPreparer(tmp_path)

    task = json.loads(preparer(S3Export(bucket="bucket", key="raw"), b"envelope"))

    assert task["bucket"] == "bucket"
    name = task["key"].split("/")[-1]
    assert task["key"] == f"raw/{name}"
    assert len(name) == len("xxxxxxx.txt")
    assert (tmp_path / name).read_bytes() == b"envelope"


def test_sitewise_export_entry(tmp_path):
    preparer = ExportPreparer(tmp_path, clock=lambda: 1600000000.5)

    entry = json.loads(preparer(SiteWiseExport(property_alias="/plant/temp"), b"21.5"))

    assert entry["propertyAlias"] == "/plant/temp"
    assert entry["entryId"]
    assert entry["propertyValues"] == [{
        "value": {"stringValue": "21.5"},
        "timestamp": {"timeInSeconds": 1600000000, "offsetInNanos": 0},
    }]


def test_sitewise_export_rejects_binary(tmp_path):
    preparer = ExportPreparer(tmp_path)

    with pytest.raises(SinkPublishError):
        preparer(SiteWiseExport(property_alias="/a"), b"\xff\xfe")
