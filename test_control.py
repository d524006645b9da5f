"""
Test control plane: command registry and command dispatch
=========================================================

Usage:
    pytest test_control.py
"""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from smbridge_control import (
    CommandExecutionError,
    CommandNotAvailableError,
    CommandRegistry,
    MQTTControlPlane,
    command_topic,
    status_topic,
)


# ─────────────────────────────────────────────────────────────────────────────
# CommandRegistry
# ─────────────────────────────────────────────────────────────────────────────

def test_register_and_execute():
    registry = CommandRegistry()
    registry.register("status", lambda data: data, "Report statistics")

    assert registry.is_available("status")
    assert registry.available_commands == {"status"}
    assert registry.get_help() == {"status": "Report statistics"}
    assert registry.execute("status") == {"command": "status"}
    assert registry.execute("status", {"command": "status", "x": 1}) == {"command": "status", "x": 1}


@pytest.mark.parametrize("name", ["", "Status", "two words"])
def test_register_rejects_invalid_names(name):
    with pytest.raises(ValueError):
        CommandRegistry().register(name, lambda data: None, "")


def test_register_rejects_duplicates():
    registry = CommandRegistry()
    registry.register("status", lambda data: None, "")

    with pytest.raises(ValueError):
        registry.register("status", lambda data: None, "")


def test_execute_unknown_command():
    with pytest.raises(CommandNotAvailableError):
        CommandRegistry().execute("missing")


def test_execute_wraps_handler_errors():
    registry = CommandRegistry()

    def failing(data):
        raise KeyError("mapping")

    registry.register("update_mapping", failing, "")

    with pytest.raises(CommandExecutionError) as excinfo:
        registry.execute("update_mapping")
    assert isinstance(excinfo.value.cause, KeyError)


# ─────────────────────────────────────────────────────────────────────────────
# MQTTControlPlane
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def paho():
    client = MagicMock()
    client.publish.return_value = SimpleNamespace(rc=0)
    return client


@pytest.fixture
def plane(paho):
    return MQTTControlPlane(broker_host="localhost", broker_port=1883, service_id="edge_01", client=paho)


def _command(payload) -> SimpleNamespace:
    return SimpleNamespace(topic=command_topic("edge_01"), payload=json.dumps(payload).encode('utf-8'))


def test_topics():
    assert command_topic("edge_01") == "smbridge/control/edge_01/commands"
    assert status_topic("edge_01") == "smbridge/control/edge_01/status"


def test_connect_subscribes_to_command_topic(plane, paho):
    plane._on_connect(paho, None, None, SimpleNamespace(is_failure=False))

    paho.subscribe.assert_called_once_with("smbridge/control/edge_01/commands", qos=1)
    topic, body = paho.publish.call_args.args
    assert topic == "smbridge/control/edge_01/status"
    assert json.loads(body)["status"] == "connected"
    assert paho.publish.call_args.kwargs == {"qos": 1, "retain": True}


def test_message_dispatches_to_registry(plane, paho):
    handler = MagicMock()
    plane.command_registry.register("update_mapping", handler, "")

    plane._on_message(paho, None, _command({"command": "UPDATE_MAPPING", "mapping": {}}))

    handler.assert_called_once_with({"command": "UPDATE_MAPPING", "mapping": {}})


def test_handler_failure_publishes_error_status(plane, paho):
    plane.command_registry.register("status", MagicMock(side_effect=RuntimeError("boom")), "")

    plane._on_message(paho, None, _command({"command": "status"}))

    status = json.loads(paho.publish.call_args.args[1])
    assert status["status"] == "error"
    assert status["details"] == {"command": "status", "error": "boom"}


@pytest.mark.parametrize("payload", [b"not json", b"[1, 2]", b'{"command": ""}', b'{"command": "missing"}'])
def test_bad_commands_are_ignored(plane, paho, payload):
    plane._on_message(paho, None, SimpleNamespace(topic="t", payload=payload))

    paho.publish.assert_not_called()


def test_help_command_publishes_registered_commands(plane, paho):
    plane.command_registry.register("status", MagicMock(), "Publish bridge statistics")

    plane._on_message(paho, None, _command({"command": "help"}))

    status = json.loads(paho.publish.call_args.args[1])
    assert status["status"] == "help"
    assert status["details"]["commands"] == {
        "help": "Publish the available commands",
        "status": "Publish bridge statistics",
    }
