#!/usr/bin/env python3
"""
Hearth Server - Entry Point
===========================

This script starts the Hearth server, which:
- Initializes the device integrations (Philips Hue)
- Loads the home environment (rooms and their services)
- Answers panel commands over the MQTT control plane
- Announces its presence (retained status, OFFLINE as last will)

Usage:
    python run_server.py --config config/server.yaml
    python run_server.py --config config/server.yaml --mock   # no real bridge

Lifecycle:
    1. Load configuration from YAML
    2. Setup logging (console + file)
    3. Create services and initialize the server (fatal on failure)
    4. Connect the control plane
    5. Wait for signals
    6. Graceful shutdown

Signals:
    - SIGTERM, SIGINT (Ctrl+C): Graceful shutdown
    - SIGHUP: Reload the environment (kept unchanged if invalid)

Logs:
    - Console: INFO level
    - File: logs/server.log (INFO level)
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from hearth_control import MQTTControlPlane
from hearth_protocol import ServerState, create_logger
from hearth_server import Server, ServerConfig
from hearth_server.services import create_services


# ─────────────────────────────────────────────────────────────────────────────
# Logging Setup
# ─────────────────────────────────────────────────────────────────────────────

def setup_logging(log_file: Optional[Path] = None, verbose: bool = False) -> logging.Logger:
    """
    Setup logging for a Hearth process.

    Args:
        log_file: Optional path to log file
        verbose: Log at DEBUG level

    Returns:
        Logger instance for the entry point
    """
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            *(
                [logging.FileHandler(log_file)]
                if log_file
                else []
            )
        ]
    )

    return logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Main Service
# ─────────────────────────────────────────────────────────────────────────────

class ServerApp:
    """
    Main application wrapper for the Hearth server.

    Handles:
    - Configuration loading
    - Component initialization (services, server, control plane)
    - Signal handling (SIGTERM, SIGINT, SIGHUP)
    - Graceful shutdown
    """

    def __init__(
        self,
        config_path: Path,
        log_file: Optional[Path] = None,
        use_mock: bool = False,
        verbose: bool = False,
    ):
        self.config_path = config_path
        self.use_mock = use_mock
        self.logger = setup_logging(log_file, verbose)

        # Components (initialized in setup())
        self.config: Optional[ServerConfig] = None
        self.server: Optional[Server] = None
        self.control_plane: Optional[MQTTControlPlane] = None

        self._stop = threading.Event()
        self._reload = threading.Event()
        self._shutdown_requested = False

    def setup(self):
        """
        Setup all components.

        Raises:
            DuplicateServiceError, ServiceInitializationError, ServerStartupError
            ConnectionError: the broker could not be reached
        """
        self.logger.info("=" * 80)
        self.logger.info("🏠 Hearth Server - Starting")
        self.logger.info("=" * 80)

        # 1. Load configuration
        self.logger.info(f"📄 Loading configuration: {self.config_path}")
        self.config = ServerConfig.from_yaml(self.config_path)
        self.logger.info(f"✅ Configuration loaded (server_id={self.config.server_id})")

        # 2. Services + environment
        if self.use_mock:
            self.logger.info("🧪 Using in-memory device bridges (--mock)")

        self.server = Server(
            environment_source=self.config.environment_path,
            debug=self.config.debug,
        )
        self.server.initialize(create_services(self.config, use_mock=self.use_mock))

        # 3. Control plane
        mqtt = self.config.mqtt
        self.logger.info(f"🔌 Connecting control plane to {mqtt.broker}:{mqtt.port}")
        self.control_plane = MQTTControlPlane(
            broker_host=mqtt.broker,
            broker_port=mqtt.port,
            topics=mqtt.topics,
            server_id=self.config.server_id,
            delegate=self.server,
            logger=create_logger(component="control_plane"),
            username=mqtt.username,
            password=mqtt.password,
            qos=mqtt.qos,
            keepalive=mqtt.keepalive,
            workers=self.config.workers,
            debug_values=self.server.debug_values,
        )

        if not self.control_plane.connect(timeout=10.0):
            raise ConnectionError(f"Unable to connect to MQTT broker at {mqtt.broker}:{mqtt.port}")

        self.logger.info(f"✅ Accepting commands on {mqtt.topics.commands}")
        self.logger.info("=" * 80)

    def run(self):
        """Block until shutdown is requested, handling reloads in between."""
        if not self.server:
            raise RuntimeError("Server not initialized. Call setup() first.")

        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)
        if hasattr(signal, "SIGHUP"):
            signal.signal(signal.SIGHUP, self._reload_handler)

        self.logger.info("Press Ctrl+C to stop, send SIGHUP to reload the environment")

        try:
            while not self._stop.is_set():
                if self._reload.wait(timeout=1.0):
                    self._reload.clear()
                    self.reload()
        finally:
            self.shutdown()

    def reload(self) -> bool:
        self.logger.info("🔄 Reloading environment")
        if not self.server.reload_environment():
            self.logger.warning("⚠️  Reload rejected, keeping the current environment")
            return False

        # Refresh the debug values panels display
        self.control_plane.publish_status(ServerState.ONLINE)
        self.logger.info("✅ Environment reloaded")
        return True

    def shutdown(self):
        """Disconnect the control plane (publishes OFFLINE)."""
        if self._shutdown_requested:
            return
        self._shutdown_requested = True

        self.logger.info("=" * 80)
        self.logger.info("🛑 Shutting down Hearth server")

        if self.control_plane:
            try:
                self.control_plane.disconnect()
                self.logger.info("✅ Control plane disconnected")
            except Exception as e:
                self.logger.error(f"❌ Error disconnecting control plane: {e}")

        self.logger.info("✅ Shutdown complete")
        self.logger.info("=" * 80)

    def _signal_handler(self, signum, frame):
        signal_name = signal.Signals(signum).name
        self.logger.info(f"⚠️  Received signal {signal_name} ({signum})")
        self._stop.set()

    def _reload_handler(self, signum, frame):
        # The reload itself runs on the main loop, never inside the handler
        self._reload.set()


# ─────────────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────────────

def parse_args():
    parser = argparse.ArgumentParser(
        description="Hearth Server - home environment + device integrations over MQTT",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start with the default config
  python run_server.py --config config/server.yaml

  # Without a Hue bridge on the network
  python run_server.py --config config/server.yaml --mock

  # Console only
  python run_server.py --config config/server.yaml --no-log-file
        """
    )

    parser.add_argument(
        '--config',
        type=Path,
        default=Path('config/server.yaml'),
        help='Path to server configuration YAML file (default: config/server.yaml)'
    )
    parser.add_argument(
        '--mock',
        action='store_true',
        help='Use in-memory device bridges instead of the real hardware'
    )
    parser.add_argument(
        '--log-file',
        type=Path,
        default=Path('logs/server.log'),
        help='Path to log file (default: logs/server.log)'
    )
    parser.add_argument(
        '--no-log-file',
        action='store_true',
        help='Disable file logging (console only)'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Debug logging'
    )

    return parser.parse_args()


def main():
    args = parse_args()

    if not args.config.exists():
        print(f"❌ Error: Configuration file not found: {args.config}", file=sys.stderr)
        sys.exit(1)

    app = ServerApp(
        config_path=args.config,
        log_file=None if args.no_log_file else args.log_file,
        use_mock=args.mock,
        verbose=args.verbose,
    )

    try:
        app.setup()
    except Exception as e:
        app.logger.error(f"❌ Fatal error: {e}", exc_info=True)
        app.shutdown()
        sys.exit(1)

    app.run()


if __name__ == '__main__':
    main()
