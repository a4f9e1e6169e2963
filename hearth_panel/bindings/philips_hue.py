"""
Philips Hue binding: lists the lights of a descriptor and switches them.

Widget actions:
    toggle <light>          flip a light on/off
    on <light> [bri]        switch on, optionally at a brightness (1-254)
    off <light>
    refresh                 fetch the light list again
"""

import logging
import threading
from concurrent.futures import Future
from typing import Any, Dict, List, Optional

from hearth_protocol.schemas import PushMessage, ServiceDescriptor

from .base import BindingContext, ServiceBinding

logger = logging.getLogger(__name__)

SERVICE_KIND = "Philips Hue"

LIGHT_CHANGED_EVENT = "philips-hue-light-changed"


class PhilipsHueBinding(ServiceBinding):

    def __init__(self, descriptor: ServiceDescriptor, context: BindingContext):
        super().__init__(descriptor, context)
        self._lights: Dict[str, Dict[str, Any]] = {}
        self._order: List[str] = []
        self._lock = threading.Lock()

    # ===== Lifecycle =====

    def activate(self) -> None:
        self.widget.set_action_handler(self.handle_action)
        self.context.connection.add_push_handler(self.on_push)
        self.widget.render(["Loading lights..."])
        self.refresh()

    def destroy(self) -> None:
        self.context.connection.remove_push_handler(self.on_push)
        super().destroy()

    # ===== Commands =====

    def refresh(self) -> Future:
        future = self.context.connection.send(
            "philips-hue-lights",
            {"options": dict(self.descriptor.options)},
        )
        future.add_done_callback(self._on_lights)
        return future

    def set_light(self, light_id: str, on: bool, brightness: Optional[int] = None) -> Future:
        parameters: Dict[str, Any] = {"light": light_id, "on": on}
        if brightness is not None:
            parameters["brightness"] = brightness

        future = self.context.connection.send("philips-hue-set-light", parameters)
        future.add_done_callback(self._on_light_set)
        return future

    def toggle(self, light_id: str) -> Optional[Future]:
        with self._lock:
            light = self._lights.get(light_id)
        if light is None:
            logger.warning(f"Unknown light {light_id} in '{self.descriptor.label}'")
            return None
        return self.set_light(light_id, not light["on"])

    def handle_action(self, args: List[str]) -> None:
        if args == ["refresh"]:
            self.refresh()
            return

        if len(args) >= 2 and args[0] in ("toggle", "on", "off"):
            action, light_id = args[0], args[1]
            if action == "toggle":
                self.toggle(light_id)
            elif action == "off":
                self.set_light(light_id, False)
            else:
                brightness = int(args[2]) if len(args) > 2 and args[2].isdigit() else None
                self.set_light(light_id, True, brightness)
            return

        self.widget.render(self._lines() + [f"Unknown action: {' '.join(args)}"])

    # ===== Updates =====

    def on_push(self, message: PushMessage) -> None:
        if message.event != LIGHT_CHANGED_EVENT:
            return
        self._update_light(message.payload.get("light") or {})

    def _on_lights(self, future: Future) -> None:
        if self.destroyed:
            return
        if future.exception() is not None:
            logger.warning(f"Unable to list lights of '{self.descriptor.label}': {future.exception()}")
            self.widget.render(["Lights unavailable"])
            return

        lights = future.result().get("lights", [])
        with self._lock:
            self._lights = {str(light["id"]): light for light in lights}
            self._order = [str(light["id"]) for light in lights]
        self.widget.render(self._lines())

    def _on_light_set(self, future: Future) -> None:
        if self.destroyed:
            return
        if future.exception() is not None:
            logger.warning(f"Unable to switch light: {future.exception()}")
            return
        self._update_light(future.result().get("light") or {})

    def _update_light(self, light: Dict[str, Any]) -> None:
        light_id = str(light.get("id", ""))
        with self._lock:
            if self.destroyed or light_id not in self._lights:
                return
            self._lights[light_id] = light
        self.widget.render(self._lines())

    def _lines(self) -> List[str]:
        with self._lock:
            lights = [self._lights[light_id] for light_id in self._order]

        if not lights:
            return ["No lights"]

        lines = []
        for light in lights:
            state = f"on ({light.get('brightness', '?')})" if light.get("on") else "off"
            if not light.get("reachable", True):
                state += ", unreachable"
            lines.append(f"{light['id']}: {light.get('name', '')} - {state}")
        return lines
