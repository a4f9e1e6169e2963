"""
Shared fakes for the test suite. No MQTT broker or Hue bridge is needed:
transports and device bridges are replaced by in-process doubles.
"""

import threading
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from hearth_control.client import ServerConnection
from hearth_panel.bindings import BindingRegistry, ServiceBinding
from hearth_panel.connection import ClientConnection
from hearth_panel.transport import ClientTransport, TransportListener
from hearth_protocol.schemas import (
    CommandReply,
    CommandRequest,
    ErrorKind,
    PushMessage,
    ServerState,
    ServerStatus,
)
from hearth_server.service import Service


# ─────────────────────────────────────────────────────────────────────────────
# Server side
# ─────────────────────────────────────────────────────────────────────────────

class FakeService(Service):
    """Service with scripted outcomes that records every call."""

    def __init__(
        self,
        identifier: str = "Fake",
        initialize_result: bool = True,
        valid: Callable[[Dict[str, Any]], bool] = lambda options: True,
        command_prefix: Optional[str] = None,
        results: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.identifier = identifier
        self.initialize_result = initialize_result
        self.valid = valid
        self.command_prefix = command_prefix
        self.results = results or {}
        self.initialize_calls = 0
        self.validate_calls: List[Dict[str, Any]] = []
        self.commands: List[tuple] = []

    def get_identifier(self) -> str:
        return self.identifier

    def initialize(self) -> bool:
        self.initialize_calls += 1
        return self.initialize_result

    def validate(self, options: Dict[str, Any]) -> bool:
        self.validate_calls.append(options)
        return self.valid(options)

    def handle_command(self, client, command, parameters):
        self.commands.append((client, command, parameters))
        return self.results.get(command)


class PushRecorder:
    """Push sink for ServerConnection."""

    def __init__(self):
        self.pushes: List[tuple] = []

    def __call__(self, client_id: str, message: PushMessage) -> bool:
        self.pushes.append((client_id, message))
        return True


@pytest.fixture
def push_recorder() -> PushRecorder:
    return PushRecorder()


@pytest.fixture
def server_client(push_recorder) -> ServerConnection:
    return ServerConnection("panel-test", push_recorder)


@pytest.fixture
def environment_data() -> Dict[str, Any]:
    return {
        "rooms": ["Office", "Kitchen"],
        "services": [
            {"room": "Office", "label": "Desk lights", "service": "Fake", "options": {"lights": ["2"]}},
            {"room": "Office", "label": "Ceiling", "service": "Fake", "options": {}},
            {"room": "Kitchen", "label": "Kitchen lights", "service": "Fake"},
        ],
    }


# ─────────────────────────────────────────────────────────────────────────────
# Panel side
# ─────────────────────────────────────────────────────────────────────────────

Responder = Callable[[str, Dict[str, Any]], Optional[Dict[str, Any]]]


class FakeTransport(ClientTransport):
    """
    In-process transport.

    Without a responder, requests stay pending until the test calls reply().
    With one, every request is answered synchronously: a None result becomes
    an "unhandled" error reply.
    """

    def __init__(self, responder: Optional[Responder] = None):
        self.responder = responder
        self.listener: Optional[TransportListener] = None
        self.requests: List[CommandRequest] = []
        self.opened = 0
        self.closed = 0
        self.accept_publish = True

    def open(self, listener: TransportListener) -> None:
        self.listener = listener
        self.opened += 1

    def close(self) -> None:
        self.closed += 1

    def publish_request(self, request: CommandRequest) -> bool:
        if not self.accept_publish:
            return False
        self.requests.append(request)

        if self.responder is not None:
            result = self.responder(request.command, request.parameters)
            if result is None:
                self.fail(request, ErrorKind.UNHANDLED, f"No handler for command '{request.command}'")
            else:
                self.reply(request, result)
        return True

    # ----- helpers driving the listener -----

    def go_online(self, debug: Sequence[str] = ()) -> None:
        self.listener.on_transport_open()
        self.listener.on_status(ServerStatus(ServerState.ONLINE, "hearth-test", tuple(debug)))

    def server_offline(self) -> None:
        self.listener.on_status(ServerStatus(ServerState.OFFLINE, "hearth-test"))

    def drop(self) -> None:
        self.listener.on_transport_closed()

    def reply(self, request: CommandRequest, result: Dict[str, Any]) -> None:
        self.listener.on_reply(CommandReply.success(request.token, result))

    def fail(self, request: CommandRequest, kind: ErrorKind, message: str) -> None:
        self.listener.on_reply(CommandReply.failure(request.token, kind, message))

    def push(self, event: str, payload: Dict[str, Any]) -> None:
        self.listener.on_push(PushMessage(event=event, payload=payload))

    def commands(self) -> List[str]:
        return [request.command for request in self.requests]


class FakeWidget:
    def __init__(self, surface: "RecordingSurface", label: str):
        self.surface = surface
        self.label = label
        self.lines: List[str] = []
        self.action_handler = None
        self.removed = False

    def render(self, lines: Sequence[str]) -> None:
        self.lines = list(lines)

    def set_action_handler(self, handler) -> None:
        self.action_handler = handler

    def remove(self) -> None:
        self.removed = True
        self.surface.events.append(("remove_widget", self.label))


class RecordingSurface:
    """
    PanelSurface recording every call in order.

    select: room picked as soon as the selection opens (None leaves it open
    until the test calls the recorded on_selected callback).
    """

    def __init__(self, select: Optional[str] = None):
        self.select = select
        self.events: List[tuple] = []
        self.widgets: List[FakeWidget] = []
        self.interface_enabled = False
        self.room_prompts: List[List[str]] = []
        self.debug_shown: List[List[str]] = []
        self.current_rooms: List[Optional[str]] = []
        self.on_selected = None
        self.selection_shown = threading.Event()
        self.fatal_message: Optional[str] = None

    def toggle_interface(self, enabled: bool) -> None:
        self.interface_enabled = enabled
        self.events.append(("toggle_interface", enabled))

    def show_not_connected(self) -> None:
        self.events.append(("show_not_connected",))

    def close_not_connected(self) -> None:
        self.events.append(("close_not_connected",))

    def show_room_select(self, rooms, debug_values, on_selected, current=None) -> None:
        self.room_prompts.append(list(rooms))
        self.current_rooms.append(current)
        self.debug_shown.append(list(debug_values))
        self.on_selected = on_selected
        self.events.append(("show_room_select", list(rooms)))
        self.selection_shown.set()
        if self.select is not None:
            on_selected(self.select)

    def close_room_select(self) -> None:
        self.events.append(("close_room_select",))

    def show_fatal_error(self, message: str) -> None:
        self.fatal_message = message
        self.events.append(("show_fatal_error", message))

    def add_service_widget(self, label: str) -> FakeWidget:
        widget = FakeWidget(self, label)
        self.widgets.append(widget)
        self.events.append(("add_service_widget", label))
        return widget

    def reload(self) -> None:
        self.events.append(("reload",))

    def names(self) -> List[str]:
        return [event[0] for event in self.events]


class RecordingBinding(ServiceBinding):
    created: List["RecordingBinding"] = []

    def activate(self) -> None:
        RecordingBinding.created.append(self)


@pytest.fixture
def binding_registry() -> BindingRegistry:
    RecordingBinding.created = []
    registry = BindingRegistry()
    registry.register("Fake", RecordingBinding)
    return registry


class FakeServer:
    """Responder answering the environment-* commands from mutable data."""

    def __init__(self, rooms: List[str], services: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.rooms = rooms
        self.services = services or {}

    def __call__(self, command: str, parameters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if command == "environment-rooms":
            return {"rooms": list(self.rooms)}
        if command == "environment-services":
            return {"services": list(self.services.get(parameters.get("room"), []))}
        return None


@pytest.fixture
def make_connection():
    """Build a ClientConnection over a FakeTransport, optionally already online."""

    def build(responder: Optional[Responder] = None, online: bool = True):
        transport = FakeTransport(responder)
        connection = ClientConnection(transport, client_id="panel-test")
        connection.connect()
        if online:
            transport.go_online()
        return connection, transport

    return build
