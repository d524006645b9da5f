"""
Test configuration loading, service wiring and the CLI
======================================================

Usage:
    pytest test_config.py
"""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import yaml

import run_bridge
from smbridge_cli.cli import build_command, build_parser, load_mapping_file
from smbridge_mqtt import MQTTClientError, MQTTMessage
from smbridge_routing import InvalidConfigurationError, RESERVED_TOPIC
from smbridge_service import BridgeConfig, BridgeService, MQTTConfig


CONFIG = {
    "service_id": "edge_01",
    "mqtt_config": {"broker": "localhost", "port": 1883, "client_id": "smbridge_edge_01"},
    "mqtt_stream_mapping": {
        "humidity": {"topic": "sensors/+/humidity", "stream": "Humidity", "appendTime": True},
        "thermostat": {"topic": "sensors/thermostat1/#", "stream": "Thermostat", "appendTopic": True},
    },
    "stream_definitions": {
        "default": {"strategyOnFull": "OverwriteOldestData"},
    },
}


def _write_config(tmp_path: Path, data: dict) -> Path:
    data = dict(data, streams_dir=str(tmp_path / "streams"), export_dir=str(tmp_path / "exports"))
    path = tmp_path / "bridge.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


# ─────────────────────────────────────────────────────────────────────────────
# BridgeConfig
# ─────────────────────────────────────────────────────────────────────────────

def test_from_yaml(tmp_path):
    config = BridgeConfig.from_yaml(_write_config(tmp_path, CONFIG))

    assert config.service_id == "edge_01"
    assert config.mqtt_config.client_id == "smbridge_edge_01"
    assert config.mqtt_stream_mapping["humidity"].include_timestamp is True
    assert config.mqtt_stream_mapping["thermostat"].include_topic is True
    assert config.stream_definitions.default.strategy_on_full == "OverwriteOldestData"
    assert config.streams_dir == tmp_path / "streams"
    assert config.control_enabled is True


def test_sample_config_loads():
    config = BridgeConfig.from_yaml(Path(__file__).parent / "config" / "bridge.yaml")

    assert "humidity" in config.mqtt_stream_mapping
    assert config.stream_definitions.definition_for("Thermostat").strategy_on_full == "RejectNewData"


@pytest.mark.parametrize("data", [
    {},
    {"service_id": ""},
    {"service_id": "s", "mqtt_config": {"port": 0}},
    {"service_id": "s", "mqtt_config": {"qos": 3}},
    {"service_id": "s", "mqtt_config": {"unknown": 1}},
    {"service_id": "s", "mqtt_stream_mapping": {"m": {"topic": "a/#/b", "stream": "S"}}},
])
def test_invalid_config(tmp_path, data):
    with pytest.raises(InvalidConfigurationError):
        BridgeConfig.from_yaml(_write_config(tmp_path, data))


def test_mqtt_config_defaults():
    assert MQTTConfig() == MQTTConfig(broker="localhost", port=1883, client_id="smbridge", qos=0)


# ─────────────────────────────────────────────────────────────────────────────
# BridgeService
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def service(tmp_path):
    config = BridgeConfig.from_yaml(_write_config(tmp_path, CONFIG))
    control_plane = MagicMock()
    service = BridgeService(config, mqtt_client=MagicMock(), control_plane=control_plane)
    service.setup()
    return service


def test_service_routes_into_streams(service, tmp_path):
    service.start()

    topics, on_message = service.mqtt_client.update_subscriptions.call_args.args
    assert topics == {"sensors/+/humidity", "sensors/thermostat1/#", RESERVED_TOPIC}

    on_message(MQTTMessage("sensors/thermostat1/humidity", b"42"))

    assert sorted(p.name for p in (tmp_path / "streams").iterdir()) == ["Humidity", "Thermostat"]
    assert service.get_stats()["stream"]["messages_appended"] == 2


def test_update_mapping_command(service):
    service.start()
    registered = {c.args[0]: c.args[1] for c in service.control_plane.command_registry.register.call_args_list}
    assert set(registered) == {"update_mapping", "status"}

    registered["update_mapping"]({
        "command": "update_mapping",
        "mapping": {"m1": {"topic": "mqtt/topic", "stream": "Stream1"}},
    })

    topics, _ = service.mqtt_client.update_subscriptions.call_args.args
    assert topics == {"mqtt/topic", RESERVED_TOPIC}
    service.control_plane.publish_status.assert_called_with("mapping_updated", {"entries": 1})


def test_invalid_update_mapping_keeps_mapping(service):
    service.start()
    registered = {c.args[0]: c.args[1] for c in service.control_plane.command_registry.register.call_args_list}

    with pytest.raises(InvalidConfigurationError):
        registered["update_mapping"]({"command": "update_mapping", "mapping": {"m1": {"topic": "a"}}})

    assert set(service.topic_mapping.current()) == {"humidity", "thermostat"}


@pytest.mark.parametrize("command", [
    {"command": "update_mapping"},
    {"command": "update_mapping", "mapping": None},
    {"command": "update_mapping", "mapping": ["m1"]},
])
def test_update_mapping_without_mapping_keeps_mapping(service, command):
    service.start()
    registered = {c.args[0]: c.args[1] for c in service.control_plane.command_registry.register.call_args_list}
    updates_before = service.mqtt_client.update_subscriptions.call_count

    with pytest.raises(InvalidConfigurationError) as excinfo:
        registered["update_mapping"](command)

    assert excinfo.value.key == "mapping"
    assert set(service.topic_mapping.current()) == {"humidity", "thermostat"}
    assert service.mqtt_client.update_subscriptions.call_count == updates_before


def test_stop_releases_wait(service):
    service.start()
    assert service.is_running()

    service.stop()

    assert service.wait(timeout=0.1)
    assert not service.is_running()
    service.mqtt_client.stop.assert_called_once()


# ─────────────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────────────

def test_cli_update_mapping_from_full_config(tmp_path):
    path = _write_config(tmp_path, CONFIG)
    args = build_parser().parse_args(["--service-id", "edge_02", "update-mapping", str(path)])

    command = build_command(args)

    assert command["command"] == "update_mapping"
    assert set(command["mapping"]) == {"humidity", "thermostat"}
    json.dumps(command)


def test_cli_rejects_invalid_mapping(tmp_path):
    path = tmp_path / "mapping.yaml"
    path.write_text(yaml.safe_dump({"m1": {"topic": "a/#/b", "stream": "S"}}))

    with pytest.raises(InvalidConfigurationError):
        load_mapping_file(str(path))


def test_cli_missing_file():
    with pytest.raises(FileNotFoundError):
        load_mapping_file("does/not/exist.yaml")


# ─────────────────────────────────────────────────────────────────────────────
# Entry point
# ─────────────────────────────────────────────────────────────────────────────

def test_entry_point_check_mode(capsys):
    with pytest.raises(SystemExit) as excinfo:
        run_bridge.main(["--config", str(Path(__file__).parent / "config" / "bridge.yaml"), "--check"])

    assert excinfo.value.code == run_bridge.EXIT_OK
    assert "mapping entries" in capsys.readouterr().out


def test_entry_point_invalid_config(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text(yaml.safe_dump({"service_id": "s", "mqtt_stream_mapping": {"m": {"topic": "a"}}}))

    with pytest.raises(SystemExit) as excinfo:
        run_bridge.main(["--config", str(path), "--check"])

    assert excinfo.value.code == run_bridge.EXIT_CONFIG


def test_app_reports_unreachable_broker(tmp_path, monkeypatch):
    monkeypatch.setattr(run_bridge.signal, "signal", MagicMock())
    config = BridgeConfig.from_yaml(_write_config(tmp_path, CONFIG))
    service = MagicMock()
    service.start.side_effect = MQTTClientError("Connection timeout after 10.0s")

    assert run_bridge.BridgeApp(config, service=service).run() == run_bridge.EXIT_RUNTIME
    service.wait.assert_not_called()


def test_app_shutdown_is_idempotent(tmp_path):
    config = BridgeConfig.from_yaml(_write_config(tmp_path, CONFIG))
    service = MagicMock()
    app = run_bridge.BridgeApp(config, service=service)

    app.shutdown()
    app.shutdown()

    service.stop.assert_called_once()
