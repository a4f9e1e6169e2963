"""
CommandRouter - dispatch of one decoded command.

The Environment is always asked first, so a service can never shadow a built-in
environment command. None means nobody claimed the command; the transport turns
that into an "unhandled" error reply.
"""

from typing import Any, Callable, Dict, Optional

from hearth_control.client import ServerConnection

from .environment import Environment
from .service_manager import ServiceManager


class CommandRouter:
    """Stateless routing: Environment, then ServiceManager."""

    def __init__(self, environment: Callable[[], Environment], services: ServiceManager):
        """
        Args:
            environment: Returns the currently active Environment. Read once per
                command, so an in-flight command keeps the snapshot it started with.
            services: Registered services
        """
        self._environment = environment
        self._services = services

    def route(
        self,
        client: ServerConnection,
        command: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        parameters = parameters or {}

        result = self._environment().dispatch_command(command, parameters)
        if result is not None:
            return result

        return self._services.dispatch_command(client, command, parameters)
