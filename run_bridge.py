#!/usr/bin/env python3
"""
Bridge Service - Entry Point
============================

Runs smbridge: local MQTT topics in, local message streams out, with the
topic mapping replaceable at runtime over the control plane.

Usage:
    python run_bridge.py --config config/bridge.yaml
    python run_bridge.py --config config/bridge.yaml --check

Lifecycle:
    1. Load and validate configuration (--check stops here)
    2. Setup logging (console + file)
    3. Build the service and connect to the broker
    4. Wait for SIGINT/SIGTERM
    5. Stop: control plane, then MQTT client

Exit codes:
    0  clean shutdown (or valid config with --check)
    1  configuration error
    2  broker unreachable or runtime failure
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from smbridge_mqtt import MQTTClientError
from smbridge_routing import InvalidConfigurationError
from smbridge_service import BridgeConfig, BridgeService

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_RUNTIME = 2

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger("run_bridge")


def setup_logging(log_file: Optional[Path] = None, level: int = logging.INFO) -> None:
    """Console handler always; file handler when `log_file` is given."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)


class BridgeApp:
    """
    Owns one BridgeService for the lifetime of the process.

    Example:
        app = BridgeApp(BridgeConfig.from_yaml(Path("config/bridge.yaml")))
        sys.exit(app.run())
    """

    def __init__(self, config: BridgeConfig, service: Optional[BridgeService] = None):
        self.config = config
        self.service = service or BridgeService(config)
        self._shutdown_requested = False

    def run(self) -> int:
        """Start, block until stopped, return an exit code."""
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        self.service.setup()
        for key, entry in sorted(self.config.mqtt_stream_mapping.items()):
            logger.info(f"  {key}: {entry.topic_filter} → {entry.destination_stream}")

        try:
            self.service.start()
        except MQTTClientError as e:
            logger.error(f"❌ {e}")
            return EXIT_RUNTIME

        logger.info(f"✅ Bridge '{self.config.service_id}' running, press Ctrl+C to stop")
        try:
            self.service.wait()
        except KeyboardInterrupt:
            self.shutdown()
        return EXIT_OK

    def shutdown(self) -> None:
        if self._shutdown_requested:
            return
        self._shutdown_requested = True

        logger.info("🛑 Shutting down")
        try:
            self.service.stop()
        except Exception as e:
            logger.error(f"❌ Error stopping service: {e}", exc_info=True)
        logger.info("✅ Shutdown complete")

    def _signal_handler(self, signum, frame):
        logger.info(f"⚠️  Received {signal.Signals(signum).name}")
        self.shutdown()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="smbridge",
        description="smbridge - Local MQTT to stream bridge",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  smbridge --config config/bridge.yaml
  smbridge --config config/bridge.yaml --no-log-file --log-level DEBUG
  smbridge --config config/bridge.yaml --check
        """
    )
    parser.add_argument('--config', type=Path, required=True,
                        help='Path to bridge configuration YAML file')
    parser.add_argument('--log-file', type=Path, default=Path('logs/bridge.log'),
                        help='Path to log file (default: logs/bridge.log)')
    parser.add_argument('--no-log-file', action='store_true',
                        help='Disable file logging (console only)')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Log level for the entry point and control plane')
    parser.add_argument('--check', action='store_true',
                        help='Validate the configuration and exit')
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)

    try:
        config = BridgeConfig.from_yaml(args.config)
    except FileNotFoundError:
        print(f"❌ Error: Configuration file not found: {args.config}", file=sys.stderr)
        sys.exit(EXIT_CONFIG)
    except InvalidConfigurationError as e:
        print(f"❌ Invalid configuration: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG)

    if args.check:
        print(f"✅ {args.config}: {len(config.mqtt_stream_mapping)} mapping entries")
        sys.exit(EXIT_OK)

    setup_logging(None if args.no_log_file else args.log_file, getattr(logging, args.log_level))
    sys.exit(BridgeApp(config).run())


if __name__ == '__main__':
    main()
