"""
hearth_panel - Thin client panel

Bounded Context: Panel side of the control plane
Responsibilities:
  - ClientConnection: liveness, correlated send(), connect/disconnect events
  - PanelController: room selection and service binding state machine
  - Bindings: one widget per service descriptor, created by service kind
  - Surfaces: what the controller needs from a UI (console rendition included)

Usage:
    config = PanelConfig.from_yaml("config/panel.yaml")
    transport = MQTTClientTransport(...)
    connection = ClientConnection(transport, client_id=config.panel_id)

    controller = PanelController(connection, ConsoleSurface(), default_registry())
    controller.start()
    connection.connect()
"""

from .bindings import (
    BindingContext,
    BindingRegistry,
    PhilipsHueBinding,
    ServiceBinding,
    UnrecognizedServiceKindError,
    default_registry,
)
from .config import PanelConfig, ReconnectPolicy
from .connection import (
    ClientConnection,
    CommandError,
    ConnectionEvent,
    ConnectionLostError,
    ConnectionState,
    MalformedReplyError,
    NotConnectedError,
    UnhandledCommandError,
)
from .controller import ConfigurationState, PanelController
from .surface import ConsoleSurface, PanelSurface, ServiceWidget
from .transport import ClientTransport, MQTTClientTransport, TransportListener

__all__ = [
    "BindingContext",
    "BindingRegistry",
    "ClientConnection",
    "ClientTransport",
    "CommandError",
    "ConfigurationState",
    "ConnectionEvent",
    "ConnectionLostError",
    "ConnectionState",
    "ConsoleSurface",
    "MQTTClientTransport",
    "MalformedReplyError",
    "NotConnectedError",
    "PanelConfig",
    "PanelController",
    "PanelSurface",
    "PhilipsHueBinding",
    "ReconnectPolicy",
    "ServiceBinding",
    "ServiceWidget",
    "TransportListener",
    "UnhandledCommandError",
    "UnrecognizedServiceKindError",
    "default_registry",
]
