#!/usr/bin/env python3
"""
Hearth Panel - Entry Point
==========================

Console panel: connects to the Hearth server, asks for a room and renders the
services of that room. Type 'configure' to pick another room.

Usage:
    python run_panel.py --config config/panel.yaml

Signals:
    - SIGTERM, SIGINT (Ctrl+C): Graceful shutdown

Logs:
    - stderr: WARNING level (INFO with -v), stdout is used by the panel itself
    - File: logs/panel.log (INFO level)
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from hearth_protocol import create_logger
from hearth_panel import (
    ClientConnection,
    ConsoleSurface,
    MQTTClientTransport,
    PanelConfig,
    PanelController,
    default_registry,
)


def setup_logging(log_file: Optional[Path] = None, verbose: bool = False) -> logging.Logger:
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.INFO if verbose else logging.WARNING)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            console,
            *(
                [logging.FileHandler(log_file)]
                if log_file
                else []
            )
        ]
    )

    return logging.getLogger(__name__)


class PanelApp:
    """Wires transport, connection, controller and the console surface."""

    def __init__(self, config: PanelConfig, logger: logging.Logger):
        self.config = config
        self.logger = logger

        mqtt = config.mqtt
        transport_logger = create_logger(component="panel_transport", level=logging.WARNING)

        self.transport = MQTTClientTransport(
            broker_host=mqtt.broker,
            broker_port=mqtt.port,
            topics=mqtt.topics,
            client_id=config.panel_id,
            logger=transport_logger,
            reconnect=config.reconnect,
            username=mqtt.username,
            password=mqtt.password,
            qos=mqtt.qos,
            keepalive=mqtt.keepalive,
        )
        self.connection = ClientConnection(
            self.transport,
            client_id=config.panel_id,
            logger=create_logger(component="panel_connection", level=logging.WARNING),
        )

        self.surface = ConsoleSurface()
        self.controller = PanelController(self.connection, self.surface, default_registry())
        self.surface.on_configure = lambda: self.controller.request_configuration(manual=True)

    def run(self):
        signal.signal(signal.SIGTERM, self._signal_handler)

        self.controller.start()
        self.connection.connect()

        try:
            for line in sys.stdin:
                self.surface.handle_input(line)
        except KeyboardInterrupt:
            pass
        finally:
            self.shutdown()

    def shutdown(self):
        self.logger.info("Shutting down panel")
        self.controller.stop()
        self.connection.disconnect()

    def _signal_handler(self, signum, frame):
        raise KeyboardInterrupt


def parse_args():
    parser = argparse.ArgumentParser(
        description="Hearth Panel - console client for the Hearth server",
    )
    parser.add_argument(
        '--config',
        type=Path,
        default=Path('config/panel.yaml'),
        help='Path to panel configuration YAML file (default: config/panel.yaml)'
    )
    parser.add_argument(
        '--log-file',
        type=Path,
        default=Path('logs/panel.log'),
        help='Path to log file (default: logs/panel.log)'
    )
    parser.add_argument(
        '--no-log-file',
        action='store_true',
        help='Disable file logging'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Show INFO logs on stderr'
    )
    return parser.parse_args()


def main():
    args = parse_args()

    if not args.config.exists():
        print(f"❌ Error: Configuration file not found: {args.config}", file=sys.stderr)
        sys.exit(1)

    logger = setup_logging(None if args.no_log_file else args.log_file, args.verbose)

    try:
        config = PanelConfig.from_yaml(args.config)
    except (KeyError, ValueError) as e:
        print(f"❌ Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    PanelApp(config, logger).run()


if __name__ == '__main__':
    main()
