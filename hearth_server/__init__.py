"""
hearth_server - Home automation server

Bounded Context: Home topology and device integrations
Responsibilities:
  - Environment: rooms and the services placed in them
  - Service plugin contract and the ServiceManager that runs them
  - CommandRouter: Environment first, then the services
  - Server: startup sequence and atomic environment reloads

Usage:
    from hearth_server import Server, ServerConfig
    from hearth_server.services import create_services

    config = ServerConfig.from_yaml("config/server.yaml")
    server = Server(environment_source=config.environment_path, debug=config.debug)
    server.initialize(create_services(config))
"""

from .config import HueConfig, ServerConfig
from .environment import Environment, EnvironmentLoadError, ServiceDescriptor
from .router import CommandRouter
from .server import Server, ServerStartupError
from .service import Service
from .service_manager import (
    DuplicateServiceError,
    ServiceInitializationError,
    ServiceManager,
)

__all__ = [
    "CommandRouter",
    "DuplicateServiceError",
    "Environment",
    "EnvironmentLoadError",
    "HueConfig",
    "Server",
    "ServerConfig",
    "ServerStartupError",
    "Service",
    "ServiceDescriptor",
    "ServiceInitializationError",
    "ServiceManager",
]
