"""
PanelController - configuration state machine of a panel.

States:
    UNINITIALIZED -> AWAITING_ROOM_SELECTION -> SERVICES_BOUND
    any -> FATAL (terminal, left only by reloading the process)

display_configuration() runs on the controller's worker thread, one request at
a time: connect events and manual "choose a room" requests are queued, so a
slow room selection never races with a reconnect replaying the same flow.

Room selection is the only suspension point. At most one selection Future
exists; it resolves exactly once, when the surface reports the user's choice,
and it is cancelled when the connection drops or a fatal error is shown.

Every disconnect bumps a generation counter. A run that finds it changed after
a reply raises ConnectionLostError before touching the surface, so a stale run
never hides the not-connected surface.
"""

import logging
import queue
import threading
from concurrent.futures import CancelledError, Future
from enum import Enum
from typing import List, Optional, Sequence

from hearth_protocol.logging import LogEvent, StructuredLogger, create_logger
from hearth_protocol.schemas import ServiceDescriptor

from .bindings import BindingContext, BindingRegistry, ServiceBinding, UnrecognizedServiceKindError
from .connection import (
    ClientConnection,
    CommandError,
    ConnectionEvent,
    ConnectionLostError,
    NotConnectedError,
)
from .surface import PanelSurface

logger = logging.getLogger(__name__)

_STOP = object()


class ConfigurationState(str, Enum):
    UNINITIALIZED = "uninitialized"
    AWAITING_ROOM_SELECTION = "awaiting_room_selection"
    SERVICES_BOUND = "services_bound"
    FATAL = "fatal"


class PanelController:
    """
    Drives room selection and service binding for one panel.

    Example:
        controller = PanelController(connection, surface, default_registry())
        controller.start()        # listens to connect/disconnect
        connection.connect()

        controller.request_configuration(manual=True)   # "choose another room"
    """

    def __init__(
        self,
        connection: ClientConnection,
        surface: PanelSurface,
        bindings: BindingRegistry,
        event_logger: Optional[StructuredLogger] = None,
    ):
        self.connection = connection
        self.surface = surface
        self.registry = bindings
        self.event_logger = event_logger or create_logger("panel")

        self._lock = threading.RLock()
        self._state = ConfigurationState.UNINITIALIZED
        self._room: Optional[str] = None
        self._bindings: List[ServiceBinding] = []
        self._selection: Optional[Future] = None
        self._selection_rooms: Sequence[str] = ()
        # Bumped on every disconnect; a run started under an older value is stale
        self._generation = 0

        self._requests: "queue.Queue[object]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None

    # ===== Properties =====

    @property
    def state(self) -> ConfigurationState:
        return self._state

    @property
    def room(self) -> Optional[str]:
        return self._room

    @property
    def bindings(self) -> List[ServiceBinding]:
        with self._lock:
            return list(self._bindings)

    # ===== Lifecycle =====

    def start(self) -> None:
        """Start the worker thread and follow the connection's events."""
        if self._worker is not None:
            return

        self.connection.add_listener(ConnectionEvent.CONNECT, self.on_connected)
        self.connection.add_listener(ConnectionEvent.DISCONNECT, self.on_disconnected)

        self._worker = threading.Thread(
            target=self._run,
            name="hearth-panel-controller",
            daemon=True,
        )
        self._worker.start()

        # Nothing is usable until the first configuration pass completes
        self.surface.toggle_interface(False)
        self.surface.show_not_connected()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self.connection.remove_listener(ConnectionEvent.CONNECT, self.on_connected)
        self.connection.remove_listener(ConnectionEvent.DISCONNECT, self.on_disconnected)

        self._cancel_selection()
        self._requests.put(_STOP)
        if self._worker is not None:
            self._worker.join(timeout=timeout)
            self._worker = None

        self._destroy_bindings()

    def request_configuration(self, manual: bool = False) -> None:
        """Queue a display_configuration() run on the worker thread."""
        self._requests.put(manual)

    def _run(self) -> None:
        while True:
            request = self._requests.get()
            if request is _STOP:
                break

            if self._state == ConfigurationState.FATAL:
                continue

            try:
                self.display_configuration(manual=bool(request))
            except (ConnectionLostError, NotConnectedError, CancelledError) as e:
                # The disconnect handler already shows the not-connected surface
                logger.info(f"Configuration interrupted: {e or 'room selection cancelled'}")
            except CommandError as e:
                self.display_fatal_error(f"Unable to configure the panel: {e}")
            except Exception as e:
                logger.error(f"Configuration failed: {e}", exc_info=True)
                self.display_fatal_error(f"Unexpected error while configuring the panel: {e}")

    # ===== Connection events =====

    def on_connected(self) -> None:
        self.request_configuration(manual=False)

    def on_disconnected(self) -> None:
        """Hide the interface and show the non-dismissible not-connected surface."""
        with self._lock:
            self._generation += 1
            self.surface.toggle_interface(False)

            if self._state == ConfigurationState.FATAL:
                return
            self._state = ConfigurationState.UNINITIALIZED

            self._cancel_selection()
            self.surface.show_not_connected()

    # ===== Configuration =====

    def display_configuration(self, manual: bool = False) -> None:
        """
        Fetch the rooms, settle on a room and bind its services.

        Runs on the worker thread; blocks while the room selection is open.
        Surface updates happen under the lock, and only while no disconnect
        has happened since the run started.

        Raises:
            ConnectionLostError, NotConnectedError: the connection dropped
            CommandError: the server rejected a command
            CancelledError: the room selection was cancelled
        """
        with self._lock:
            generation = self._generation

        rooms = self.connection.send("environment-rooms").result()["rooms"]

        with self._lock:
            self._ensure_current(generation)
            self.surface.close_not_connected()
            self.surface.toggle_interface(False)

            if not rooms:
                self.display_fatal_error("No rooms have been configured on the server.")
                return

            room = self._room

        if manual or room is None or room not in rooms:
            room = self.select_room(rooms, generation=generation)

        with self._lock:
            self._room = room

        result = self.connection.send("environment-services", {"room": room}).result()
        descriptors = [ServiceDescriptor.from_dict(entry) for entry in result["services"]]

        with self._lock:
            self._ensure_current(generation)
            self._destroy_bindings()

            if self._state == ConfigurationState.FATAL:
                return

            self.surface.toggle_interface(True)
            context = BindingContext(connection=self.connection, surface=self.surface)

            for descriptor in descriptors:
                try:
                    binding = self.registry.create(descriptor, context)
                except UnrecognizedServiceKindError as e:
                    self.display_fatal_error(f"{e} (service '{descriptor.label}' in {room})")
                    return
                self._bindings.append(binding)

            self._state = ConfigurationState.SERVICES_BOUND

        logger.info(f"Room {room} configured with {len(descriptors)} services")

    def select_room(self, rooms: Sequence[str], generation: Optional[int] = None) -> str:
        """
        Ask the user for a room and block until one is picked.

        Args:
            rooms: Rooms to offer
            generation: Connection generation of the calling run, if any

        Raises:
            RuntimeError: a selection is already pending
            ConnectionLostError: the connection dropped since `generation`
            CancelledError: the selection was cancelled (disconnect, fatal error)
        """
        options = sorted(rooms)
        future: Future = Future()

        with self._lock:
            if generation is not None:
                self._ensure_current(generation)
            if self._selection is not None:
                raise RuntimeError("A room selection is already pending")
            self._selection = future
            self._selection_rooms = options
            self._state = ConfigurationState.AWAITING_ROOM_SELECTION

        try:
            with self._lock:
                # A disconnect may already have cancelled it
                if not future.cancelled():
                    self.surface.show_room_select(
                        options,
                        self.connection.debug_values,
                        self.resolve_room_selection,
                        current=self._room,
                    )
            return future.result()
        finally:
            with self._lock:
                self._selection = None
                self._selection_rooms = ()
            self.surface.close_room_select()

    def resolve_room_selection(self, room: str) -> bool:
        """
        Called by the surface with the user's choice.

        Returns:
            True if the pending selection was resolved with `room`
        """
        with self._lock:
            future = self._selection
            if future is None or future.done():
                return False
            if room not in self._selection_rooms:
                logger.warning(f"Ignoring selection of unknown room {room!r}")
                return False
            future.set_result(room)
            return True

    def _ensure_current(self, generation: int) -> None:
        if generation != self._generation:
            raise ConnectionLostError("The connection dropped while configuring the panel")

    def _cancel_selection(self) -> None:
        with self._lock:
            if self._selection is not None:
                self._selection.cancel()

    def _destroy_bindings(self) -> None:
        with self._lock:
            bindings, self._bindings = self._bindings, []

        for binding in bindings:
            binding.destroy()

    # ===== Fatal error =====

    def display_fatal_error(self, message: str) -> None:
        """
        Enter the terminal FATAL state.

        The interface is disabled before the fatal surface is shown; the
        surface keeps it above everything else until the process reloads.
        """
        with self._lock:
            self._state = ConfigurationState.FATAL

        self.surface.toggle_interface(False)
        self._cancel_selection()
        self.surface.show_fatal_error(message)

        self.event_logger.error(
            event=LogEvent.PANEL_FATAL,
            message=message,
            metadata={'room': self._room}
        )
