"""
PanelController tests.

display_configuration() is driven synchronously where possible; the worker
thread is exercised through start()/stop() with polling for its effects.

Usage:
    pytest test_panel_controller.py
"""

import threading
import time
from concurrent.futures import CancelledError

import pytest

from conftest import FakeServer, RecordingBinding, RecordingSurface
from hearth_panel.connection import ConnectionEvent, ConnectionLostError
from hearth_panel.controller import ConfigurationState, PanelController


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def fake(label):
    return {"label": label, "service": "Fake", "options": {}}


def drop_after(transport, command):
    """Drop the connection as soon as `command` has been answered."""
    publish = transport.publish_request

    def publish_then_drop(request):
        accepted = publish(request)
        if request.command == command:
            transport.drop()
        return accepted

    transport.publish_request = publish_then_drop


@pytest.fixture
def home():
    return FakeServer(
        rooms=["Office", "Kitchen"],
        services={
            "Office": [fake("Desk lights"), fake("Ceiling")],
            "Kitchen": [fake("Kitchen lights")],
        },
    )


@pytest.fixture
def panel(make_connection, binding_registry, home):
    """Controller over an online connection answered by `home`."""

    def build(select=None):
        connection, transport = make_connection(responder=home)
        surface = RecordingSurface(select=select)
        controller = PanelController(connection, surface, binding_registry)
        return controller, surface, transport

    return build


# ─────────────────────────────────────────────────────────────────────────────
# display_configuration
# ─────────────────────────────────────────────────────────────────────────────

def test_first_configuration_prompts_sorted_rooms(panel):
    controller, surface, transport = panel(select="Office")

    controller.display_configuration()

    assert surface.room_prompts == [["Kitchen", "Office"]]
    assert transport.commands() == ["environment-rooms", "environment-services"]
    assert transport.requests[1].parameters == {"room": "Office"}
    assert [b.descriptor.label for b in RecordingBinding.created] == ["Desk lights", "Ceiling"]
    assert controller.state == ConfigurationState.SERVICES_BOUND
    assert controller.room == "Office"
    assert surface.interface_enabled is True
    assert "close_room_select" in surface.names()


def test_debug_values_reach_the_room_prompt(make_connection, binding_registry, home):
    connection, transport = make_connection(responder=home, online=False)
    transport.go_online(debug=["rooms: 2"])
    surface = RecordingSurface(select="Kitchen")

    PanelController(connection, surface, binding_registry).display_configuration()

    assert surface.debug_shown == [["rooms: 2"]]


def test_known_room_is_kept_without_prompt(panel):
    controller, surface, transport = panel(select="Office")
    controller.display_configuration()

    controller.display_configuration(manual=False)

    assert len(surface.room_prompts) == 1
    assert transport.commands().count("environment-services") == 2


def test_manual_configuration_always_prompts(panel):
    controller, surface, _ = panel(select="Office")
    controller.display_configuration()

    surface.select = "Kitchen"
    controller.display_configuration(manual=True)

    assert len(surface.room_prompts) == 2
    assert controller.room == "Kitchen"


def test_vanished_room_forces_reselection(panel, home):
    controller, surface, transport = panel(select="Office")
    controller.display_configuration()

    home.rooms = ["Kitchen"]
    surface.select = "Kitchen"
    controller.display_configuration(manual=False)

    assert surface.room_prompts == [["Kitchen", "Office"], ["Kitchen"]]
    assert transport.requests[-1].parameters == {"room": "Kitchen"}
    assert controller.room == "Kitchen"


def test_previous_bindings_destroyed_before_new_ones(panel):
    controller, surface, _ = panel(select="Office")
    controller.display_configuration()
    first = controller.bindings

    surface.select = "Kitchen"
    controller.display_configuration(manual=True)

    assert all(binding.destroyed for binding in first)
    assert [b.descriptor.label for b in controller.bindings] == ["Kitchen lights"]

    names = surface.names()
    last_remove = max(i for i, name in enumerate(names) if name == "remove_widget")
    kitchen_added = names.index("add_service_widget", last_remove)
    assert last_remove < kitchen_added


def test_empty_room_list_is_fatal(panel, home):
    home.rooms = []
    controller, surface, transport = panel(select="Office")

    controller.display_configuration()

    assert controller.state == ConfigurationState.FATAL
    assert surface.fatal_message is not None
    assert surface.room_prompts == []
    assert transport.commands() == ["environment-rooms"]


def test_unknown_service_kind_is_fatal(panel, home):
    home.services["Office"] = [
        fake("Desk lights"),
        {"label": "Radiator", "service": "Thermostat", "options": {}},
        fake("Ceiling"),
    ]
    controller, surface, _ = panel(select="Office")

    controller.display_configuration()

    assert controller.state == ConfigurationState.FATAL
    assert "Thermostat" in surface.fatal_message
    # Nothing is bound after the unknown kind
    assert [b.descriptor.label for b in RecordingBinding.created] == ["Desk lights"]

    events = surface.events
    fatal_at = events.index(("show_fatal_error", surface.fatal_message))
    assert events[fatal_at - 1] == ("toggle_interface", False)
    assert surface.interface_enabled is False


def test_malformed_descriptor_raises(panel, home):
    home.services["Office"] = [{"label": "No kind"}]
    controller, _, _ = panel(select="Office")

    with pytest.raises(ValueError):
        controller.display_configuration()


def test_not_connected_surface_closed_once_rooms_arrive(panel):
    controller, surface, _ = panel(select="Kitchen")

    controller.display_configuration()

    names = surface.names()
    assert names.index("close_not_connected") < names.index("show_room_select")


def test_disconnect_after_rooms_reply_keeps_not_connected(panel):
    controller, surface, transport = panel(select="Office")
    controller.connection.add_listener(ConnectionEvent.DISCONNECT, controller.on_disconnected)
    drop_after(transport, "environment-rooms")

    with pytest.raises(ConnectionLostError):
        controller.display_configuration()

    # The stale run neither closes the indicator nor opens a room prompt
    assert surface.events == [("toggle_interface", False), ("show_not_connected",)]
    assert surface.room_prompts == []
    assert transport.commands() == ["environment-rooms"]
    assert controller.state == ConfigurationState.UNINITIALIZED


def test_disconnect_after_services_reply_binds_nothing(panel):
    controller, surface, transport = panel(select="Office")
    controller.connection.add_listener(ConnectionEvent.DISCONNECT, controller.on_disconnected)
    drop_after(transport, "environment-services")

    with pytest.raises(ConnectionLostError):
        controller.display_configuration()

    assert surface.events[-2:] == [("toggle_interface", False), ("show_not_connected",)]
    assert ("toggle_interface", True) not in surface.events
    assert RecordingBinding.created == []
    assert controller.bindings == []
    assert controller.state == ConfigurationState.UNINITIALIZED


def test_selection_after_disconnect_is_refused(panel):
    controller, surface, _ = panel(select="Office")
    with controller._lock:
        generation = controller._generation
    controller.on_disconnected()

    with pytest.raises(ConnectionLostError):
        controller.select_room(["Office"], generation=generation)

    assert surface.room_prompts == []


def test_room_prompt_marks_current_room(panel):
    controller, surface, _ = panel(select="Office")
    controller.display_configuration()

    surface.select = "Kitchen"
    controller.display_configuration(manual=True)

    assert surface.current_rooms == [None, "Office"]


# ─────────────────────────────────────────────────────────────────────────────
# Room selection
# ─────────────────────────────────────────────────────────────────────────────

def test_resolve_without_pending_selection(panel):
    controller, _, _ = panel()

    assert controller.resolve_room_selection("Office") is False


def test_single_pending_selection(panel):
    controller, surface, _ = panel()
    picked = []

    worker = threading.Thread(target=lambda: picked.append(controller.select_room(["Office", "Kitchen"])))
    worker.start()
    assert surface.selection_shown.wait(2.0)
    assert controller.state == ConfigurationState.AWAITING_ROOM_SELECTION

    with pytest.raises(RuntimeError):
        controller.select_room(["Office"])

    assert controller.resolve_room_selection("Attic") is False
    assert controller.resolve_room_selection("Kitchen") is True
    worker.join(2.0)

    assert picked == ["Kitchen"]
    # The selection resolves exactly once
    assert controller.resolve_room_selection("Office") is False


def test_disconnect_cancels_selection(panel):
    controller, surface, transport = panel()
    errors = []

    def select():
        try:
            controller.select_room(["Office"])
        except CancelledError as e:
            errors.append(e)

    worker = threading.Thread(target=select)
    worker.start()
    assert surface.selection_shown.wait(2.0)

    controller.on_disconnected()
    worker.join(2.0)

    assert len(errors) == 1
    assert controller.state == ConfigurationState.UNINITIALIZED
    assert "show_not_connected" in surface.names()
    assert "close_room_select" in surface.names()


def test_fatal_error_is_sticky(panel):
    controller, surface, _ = panel()

    controller.display_fatal_error("broken")
    controller.on_disconnected()

    assert controller.state == ConfigurationState.FATAL
    assert "show_not_connected" not in surface.names()
    assert surface.interface_enabled is False


# ─────────────────────────────────────────────────────────────────────────────
# Worker thread
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def running(make_connection, binding_registry, home):
    """Started controller over a connection that is not yet online."""
    started = []

    def build(select=None, responder=home):
        connection, transport = make_connection(responder=responder, online=False)
        surface = RecordingSurface(select=select)
        controller = PanelController(connection, surface, binding_registry)
        controller.start()
        started.append(controller)
        return controller, surface, transport

    yield build

    for controller in started:
        controller.stop()


def test_start_shows_not_connected(running):
    controller, surface, _ = running()

    assert surface.events[:2] == [("toggle_interface", False), ("show_not_connected",)]
    assert controller.state == ConfigurationState.UNINITIALIZED


def test_connect_event_configures_panel(running):
    controller, surface, transport = running(select="Office")

    transport.go_online()

    assert wait_for(lambda: controller.state == ConfigurationState.SERVICES_BOUND)
    assert controller.room == "Office"


def test_reconnect_reconfigures_without_prompt(running):
    controller, surface, transport = running(select="Office")
    transport.go_online()
    assert wait_for(lambda: controller.state == ConfigurationState.SERVICES_BOUND)

    transport.drop()
    assert controller.state == ConfigurationState.UNINITIALIZED
    assert surface.interface_enabled is False

    transport.go_online()
    assert wait_for(lambda: controller.state == ConfigurationState.SERVICES_BOUND)
    assert len(surface.room_prompts) == 1


def test_disconnect_during_selection_then_reconnect(running):
    controller, surface, transport = running()
    transport.go_online()
    assert surface.selection_shown.wait(2.0)

    transport.drop()
    assert wait_for(lambda: "close_room_select" in surface.names())
    assert controller.state == ConfigurationState.UNINITIALIZED

    surface.selection_shown.clear()
    transport.go_online()
    assert surface.selection_shown.wait(2.0)
    assert controller.resolve_room_selection("Kitchen") is True

    assert wait_for(lambda: controller.state == ConfigurationState.SERVICES_BOUND)
    assert controller.room == "Kitchen"


def test_command_error_during_configuration_is_fatal(running):
    rooms_only = FakeServer(rooms=["Office"])

    def responder(command, parameters):
        if command == "environment-services":
            return None
        return rooms_only(command, parameters)

    controller, surface, transport = running(select="Office", responder=responder)
    transport.go_online()

    assert wait_for(lambda: controller.state == ConfigurationState.FATAL)
    assert "environment-services" in surface.fatal_message


def test_requests_ignored_once_fatal(running, home):
    home.rooms = []
    controller, surface, transport = running(select="Office")
    transport.go_online()
    assert wait_for(lambda: controller.state == ConfigurationState.FATAL)
    sent = len(transport.requests)

    controller.request_configuration(manual=True)
    controller.stop()

    assert len(transport.requests) == sent
    assert surface.names().count("show_fatal_error") == 1


def test_stop_destroys_bindings(running):
    controller, surface, transport = running(select="Office")
    transport.go_online()
    assert wait_for(lambda: controller.state == ConfigurationState.SERVICES_BOUND)
    bindings = controller.bindings

    controller.stop()

    assert bindings and all(binding.destroyed for binding in bindings)
    assert controller.bindings == []
