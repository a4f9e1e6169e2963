"""
Service - plugin contract for device integrations.

One Service instance exists per integration (lighting hub, thermostat, ...).
It is created once at server start and lives for the process lifetime.

Contract:
  - get_identifier(): unique across registered services; it is also the
    service kind that environment descriptors refer to
  - initialize(): backend handshake, False aborts server startup
  - validate(options): side-effect free check of a descriptor's options
  - handle_command(): optional, for commands starting with command_prefix
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from hearth_control.client import ServerConnection


class Service(ABC):
    """Base class for all integrations."""

    # Namespace of service-scoped commands (e.g. "philips-hue-"); None means
    # the service does not handle commands.
    command_prefix: Optional[str] = None

    @abstractmethod
    def get_identifier(self) -> str:
        """Stable, unique identifier (and service kind)."""

    @abstractmethod
    def initialize(self) -> bool:
        """
        Perform the handshake with the integration's backend.

        Not retried automatically: returning False is fatal at startup.
        """

    @abstractmethod
    def validate(self, options: Dict[str, Any]) -> bool:
        """
        Confirm this service can operate with a descriptor's options.

        Must be idempotent and must not mutate any state.
        """

    def claims(self, command: str) -> bool:
        return self.command_prefix is not None and command.startswith(self.command_prefix)

    def handle_command(
        self,
        client: ServerConnection,
        command: str,
        parameters: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """Handle a service-scoped command; None when the command is unknown."""
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.get_identifier()!r})"
