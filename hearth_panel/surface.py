"""
Panel surface - what the controller needs from a UI toolkit.

The controller depends on three modal surfaces (fatal error, not connected,
room selection), a container for service widgets and a switch that enables or
disables the interface. PanelSurface describes them; ConsoleSurface is a
terminal rendition used by run_panel.py.

Stacking contract: the fatal error is topmost. Once shown, nothing else is
rendered and the only way out is reload().
"""

import logging
import os
import sys
import threading
from typing import Callable, Dict, List, Optional, Protocol, Sequence, TextIO

logger = logging.getLogger(__name__)

ActionHandler = Callable[[List[str]], None]
RoomSelected = Callable[[str], None]


class ServiceWidget(Protocol):
    """A rendered control owned by one ServiceBinding."""

    def render(self, lines: Sequence[str]) -> None: ...

    def set_action_handler(self, handler: Optional[ActionHandler]) -> None: ...

    def remove(self) -> None: ...


class PanelSurface(Protocol):
    """UI affordances used by PanelController."""

    def toggle_interface(self, enabled: bool) -> None: ...

    def show_not_connected(self) -> None: ...

    def close_not_connected(self) -> None: ...

    def show_room_select(
        self,
        rooms: Sequence[str],
        debug_values: Sequence[str],
        on_selected: RoomSelected,
        current: Optional[str] = None,
    ) -> None: ...

    def close_room_select(self) -> None: ...

    def show_fatal_error(self, message: str) -> None: ...

    def add_service_widget(self, label: str) -> ServiceWidget: ...

    def reload(self) -> None: ...


class ConsoleWidget:
    """ServiceWidget printed to the console."""

    def __init__(self, surface: "ConsoleSurface", index: int, label: str):
        self.surface = surface
        self.index = index
        self.label = label
        self.lines: List[str] = []
        self.action_handler: Optional[ActionHandler] = None

    def render(self, lines: Sequence[str]) -> None:
        self.lines = list(lines)
        self.surface.refresh_widget(self)

    def set_action_handler(self, handler: Optional[ActionHandler]) -> None:
        self.action_handler = handler

    def remove(self) -> None:
        self.surface.remove_widget(self)


class ConsoleSurface:
    """
    Terminal PanelSurface.

    Input (one command per line, see handle_input):
        <number>|<room>      pick a room while the room selection is open
        configure            choose another room
        <widget> <args...>   action for a service widget, e.g. "1 toggle 3"
        reload               restart the panel process
    """

    def __init__(self, stream: TextIO = sys.stdout):
        self.stream = stream
        self.on_configure: Optional[Callable[[], None]] = None

        self._lock = threading.RLock()
        self._interface_enabled = False
        self._not_connected = False
        self._fatal: Optional[str] = None
        self._rooms: Optional[List[str]] = None
        self._on_selected: Optional[RoomSelected] = None
        self._widgets: Dict[int, ConsoleWidget] = {}
        self._next_index = 1

    def _write(self, text: str) -> None:
        with self._lock:
            self.stream.write(text + "\n")
            self.stream.flush()

    # ===== PanelSurface =====

    def toggle_interface(self, enabled: bool) -> None:
        with self._lock:
            self._interface_enabled = enabled
            if enabled and self._fatal is None:
                self._write("── interface enabled ──")

    def show_not_connected(self) -> None:
        with self._lock:
            self._not_connected = True
            if self._fatal is None:
                self._write("⚠️  Not connected to the server, reconnecting...")

    def close_not_connected(self) -> None:
        with self._lock:
            if self._not_connected and self._fatal is None:
                self._write("✅ Connected to the server")
            self._not_connected = False

    def show_room_select(
        self,
        rooms: Sequence[str],
        debug_values: Sequence[str],
        on_selected: RoomSelected,
        current: Optional[str] = None,
    ) -> None:
        with self._lock:
            self._rooms = list(rooms)
            self._on_selected = on_selected
            if self._fatal is not None:
                return

            self._write("Select a room:")
            for number, room in enumerate(self._rooms, start=1):
                marker = " (current)" if room == current else ""
                self._write(f"  {number}) {room}{marker}")
            for value in debug_values:
                self._write(f"  [debug] {value}")

    def close_room_select(self) -> None:
        with self._lock:
            self._rooms = None
            self._on_selected = None

    def show_fatal_error(self, message: str) -> None:
        with self._lock:
            self._fatal = message
            self._write(f"❌ Fatal error: {message}")
            self._write("   Type 'reload' to restart the panel.")

    def add_service_widget(self, label: str) -> ConsoleWidget:
        with self._lock:
            widget = ConsoleWidget(self, self._next_index, label)
            self._widgets[widget.index] = widget
            self._next_index += 1
            return widget

    def reload(self) -> None:
        logger.info("Reloading panel process")
        self.stream.flush()
        os.execv(sys.executable, [sys.executable] + sys.argv)

    # ===== Widgets =====

    def refresh_widget(self, widget: ConsoleWidget) -> None:
        with self._lock:
            if self._fatal is not None or widget.index not in self._widgets:
                return
            self._write(f"[{widget.index}] {widget.label}")
            for line in widget.lines:
                self._write(f"    {line}")

    def remove_widget(self, widget: ConsoleWidget) -> None:
        with self._lock:
            self._widgets.pop(widget.index, None)
            if not self._widgets:
                self._next_index = 1

    # ===== Input =====

    def handle_input(self, line: str) -> None:
        words = line.split()
        if not words:
            return

        if words[0] == "reload":
            self.reload()
            return

        # Callbacks run outside the lock: they call back into the controller
        with self._lock:
            if self._fatal is not None:
                self._write("The panel must be reloaded.")
                return

            on_selected = self._on_selected
            if on_selected is not None:
                room = self._select(" ".join(words))
                on_configure = None
                widget = None
            elif words[0] == "configure":
                on_configure = self.on_configure
                widget = None
            else:
                on_configure = None
                widget = self._widgets.get(int(words[0])) if words[0].isdigit() else None

        if on_selected is not None:
            if room is not None:
                on_selected(room)
            return

        if on_configure is not None:
            on_configure()
            return

        if not self._interface_enabled or widget is None or widget.action_handler is None:
            self._write(f"Unknown input: {line.strip()}")
            return

        widget.action_handler(words[1:])

    def _select(self, choice: str) -> Optional[str]:
        rooms = self._rooms or []
        if choice.isdigit() and 1 <= int(choice) <= len(rooms):
            return rooms[int(choice) - 1]
        if choice in rooms:
            return choice

        self._write(f"Unknown room: {choice}")
        return None
