"""
Server - owns the environment and the services, answers network commands.

Lifecycle:
  1. Server(...) starts with an empty environment
  2. initialize(services) registers every service, then loads the environment;
     any failure aborts startup
  3. on_network_command() is called by the control plane for every request
  4. reload_environment() may be called at any time (e.g. on SIGHUP)

Thread Safety:
  - Reloads are single-flight (one lock, held for the whole reload)
  - The environment swap is a single reference assignment; commands read the
    reference once and never observe a half-built topology
"""

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from hearth_control.client import ServerConnection

from .environment import Environment, EnvironmentLoadError, EnvironmentSource
from .router import CommandRouter
from .service import Service
from .service_manager import ServiceManager

logger = logging.getLogger(__name__)


class ServerStartupError(Exception):
    """The server could not finish starting."""


class Server:
    """
    Main runtime of the server.

    Example:
        server = Server(environment_source=Path("config/environment.yaml"))
        server.initialize([PhilipsHueService(bridge)])

        # Wire the control plane with server as its delegate
        plane = MQTTControlPlane(..., delegate=server, debug_values=server.debug_values)
    """

    def __init__(
        self,
        environment_source: Optional[EnvironmentSource] = None,
        services: Optional[ServiceManager] = None,
        debug: bool = False,
    ):
        self._environment_source = environment_source
        self._environment = Environment.empty()
        self._reload_lock = threading.Lock()
        self.debug = debug

        self.services = services or ServiceManager()
        self.router = CommandRouter(lambda: self._environment, self.services)

    @property
    def environment(self) -> Environment:
        """Currently active environment (a complete, immutable snapshot)."""
        return self._environment

    def initialize(self, services: Iterable[Service]) -> None:
        """
        Register all services, then load the environment.

        Raises:
            DuplicateServiceError, ServiceInitializationError: from add_service
            ServerStartupError: the environment could not be loaded
        """
        for service in services:
            self.services.add_service(service)

        if not self.reload_environment():
            raise ServerStartupError("Unable to load the home configuration, aborting.")

        logger.info(
            f"✅ Server initialized: {len(self._environment.rooms)} rooms, "
            f"services {self.services.identifiers}"
        )

    def reload_environment(self, source: Optional[EnvironmentSource] = None) -> bool:
        """
        Re-read the environment and swap it in when it is valid.

        Returns:
            True if the new environment is active, False if the previous one
            was kept (unreadable source or rejected by a service).
        """
        source = source if source is not None else self._environment_source
        if source is None:
            logger.error("No environment source configured")
            return False

        with self._reload_lock:
            try:
                candidate = Environment.from_source(source)
            except EnvironmentLoadError as e:
                logger.error(f"Environment reload failed: {e}")
                return False

            if not self.services.validate_environment(candidate):
                logger.error("Environment reload rejected by service validation")
                return False

            self._environment = candidate

        logger.info(f"Environment loaded: rooms {list(candidate.rooms)}")
        return True

    def on_network_command(
        self,
        client: ServerConnection,
        command: str,
        parameters: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        return self.router.route(client, command, parameters)

    def debug_values(self) -> List[str]:
        """Diagnostic lines shown by the panels; empty unless debug is enabled."""
        if not self.debug:
            return []

        source = self._environment_source
        if isinstance(source, (str, Path)):
            source = str(source)
        else:
            source = "<inline>"

        environment = self._environment
        return [
            f"environment: {source}",
            f"rooms: {len(environment.rooms)}",
            f"descriptors: {len(environment.descriptors())}",
            f"services: {', '.join(self.services.identifiers) or '-'}",
        ]
