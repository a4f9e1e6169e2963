"""
ServiceManager - registry and lifecycle of Services.

Responsibilities:
  - Register services (insertion ordered, unique identifiers)
  - Initialize them, aborting startup on failure
  - Validate a candidate environment against the registered services
  - Route service-scoped commands by prefix

Thread Safety:
  - Registration happens at startup, before commands are accepted
  - validate_environment() and dispatch_command() only read the registry
"""

import logging
from typing import Any, Dict, List, Optional

from hearth_control.client import ServerConnection

from .environment import Environment
from .service import Service

logger = logging.getLogger(__name__)


class DuplicateServiceError(Exception):
    """A service with the same identifier is already registered."""


class ServiceInitializationError(Exception):
    """A service failed its initialization handshake."""


class ServiceManager:
    """
    Insertion-ordered registry of Services.

    Example:
        manager = ServiceManager()
        manager.add_service(PhilipsHueService(bridge))

        if not manager.validate_environment(candidate):
            ...  # keep the current environment
    """

    def __init__(self):
        self._services: Dict[str, Service] = {}

    def add_service(self, service: Service) -> None:
        """
        Register and initialize a service.

        Raises:
            DuplicateServiceError: identifier already registered
            ServiceInitializationError: initialize() returned False or raised
        """
        identifier = service.get_identifier()
        if identifier in self._services:
            raise DuplicateServiceError(f"Service '{identifier}' is already registered")

        try:
            initialized = service.initialize()
        except Exception as e:
            raise ServiceInitializationError(
                f"Service '{identifier}' raised during initialization: {e}"
            ) from e

        if not initialized:
            raise ServiceInitializationError(f"Service '{identifier}' failed to initialize")

        self._services[identifier] = service
        logger.info(f"Service registered: {identifier}")

    def get_service(self, identifier: str) -> Optional[Service]:
        return self._services.get(identifier)

    @property
    def identifiers(self) -> List[str]:
        return list(self._services)

    def validate_environment(self, environment: Environment) -> bool:
        """
        Check every descriptor of a candidate environment.

        All service kinds are resolved before anything fails, then each
        descriptor is validated in environment order. The failure logged is
        the first one in that order, so it is stable for a given environment.
        """
        descriptors = environment.descriptors()

        unknown = sorted({d.service_kind for d in descriptors if d.service_kind not in self._services})
        if unknown:
            logger.error(f"Environment references unknown service kinds: {unknown}")
            return False

        for descriptor in descriptors:
            service = self._services[descriptor.service_kind]
            if not service.validate(descriptor.options):
                logger.error(
                    f"Service '{descriptor.service_kind}' rejected the options of "
                    f"'{descriptor.label}': {descriptor.options}"
                )
                return False

        return True

    def dispatch_command(
        self,
        client: ServerConnection,
        command: str,
        parameters: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """Route to the first service claiming the command; None if none does."""
        for service in self._services.values():
            if not service.claims(command):
                continue

            result = service.handle_command(client, command, parameters)
            if result is not None:
                return result

        return None
