"""
smbridge CLI - Main entry point.

Sends control-plane commands to a running bridge.
"""

import argparse
import sys
from pathlib import Path
from typing import Any, Dict

import yaml

from smbridge_control import command_topic
from smbridge_routing import InvalidConfigurationError, parse_mapping

from .mqtt_client import MQTTCommandClient


def load_mapping_file(config_path: str) -> Dict[str, Any]:
    """
    Load and validate a mapping YAML file.

    The file is either the mapping itself or a document with a
    'mqtt_stream_mapping' section (a full bridge config).

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If YAML is invalid
        InvalidConfigurationError: If the mapping is malformed
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

    if isinstance(data, dict) and "mqtt_stream_mapping" in data:
        data = data["mqtt_stream_mapping"]

    parse_mapping(data)
    return data or {}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smbridge-cli",
        description="smbridge CLI - Send MQTT commands to a running bridge",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Replace the topic mapping
  smbridge-cli update-mapping config/mapping.yaml

  # Ask the bridge to publish its statistics
  smbridge-cli status
"""
    )
    parser.add_argument("--service-id", default="edge_01", help="Target service ID (default: edge_01)")
    parser.add_argument("--broker", default="localhost", help="MQTT broker host (default: localhost)")
    parser.add_argument("--port", type=int, default=1883, help="MQTT broker port (default: 1883)")

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    update_mapping = subparsers.add_parser('update-mapping', help='Replace mapping from YAML')
    update_mapping.add_argument('config', help='Path to mapping YAML')

    subparsers.add_parser('status', help='Publish bridge statistics to the status topic')
    subparsers.add_parser('help', help='Publish the commands the bridge accepts')
    return parser


def build_command(args: argparse.Namespace) -> Dict[str, Any]:
    if args.command == 'update-mapping':
        return {'command': 'update_mapping', 'mapping': load_mapping_file(args.config)}
    return {'command': args.command}


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        command = build_command(args)
        client = MQTTCommandClient(broker=args.broker, port=args.port)
        client.send_command(command_topic(args.service_id), command, qos=1)
    except (OSError, ValueError, InvalidConfigurationError) as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
