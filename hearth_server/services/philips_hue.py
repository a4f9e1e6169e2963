"""
Philips Hue integration.

Provides control over the lights attached to a Philips Hue bridge:
  - HueBridge: what the service needs from a bridge
  - HueBridgeClient: the bridge's REST API (v1) over requests
  - MockHueBridge: in-memory bridge for development (--mock)
  - PhilipsHueService: the Service plugin

Commands (prefix "philips-hue-"):
  - philips-hue-lights      params: options (descriptor options)
  - philips-hue-set-light   params: light, on, brightness (optional, 1-254)

A successful state change is pushed back to the requesting client as a
"philips-hue-light-changed" message.
"""

import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Protocol

import requests

from hearth_control.client import ServerConnection
from hearth_control.registry import CommandParameterError

from ..service import Service

logger = logging.getLogger(__name__)

SERVICE_KIND = "Philips Hue"

LIGHT_CHANGED_EVENT = "philips-hue-light-changed"

MIN_BRIGHTNESS = 1
MAX_BRIGHTNESS = 254


class HueBridgeError(Exception):
    """The bridge could not be reached or refused the request."""


@dataclass(frozen=True)
class HueLight:
    """Snapshot of one light as reported by the bridge."""

    light_id: str
    name: str
    on: bool = False
    brightness: int = MAX_BRIGHTNESS
    reachable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.light_id,
            "name": self.name,
            "on": self.on,
            "brightness": self.brightness,
            "reachable": self.reachable,
        }


class HueBridge(Protocol):
    """Bridge operations used by the service."""

    def get_lights(self) -> Dict[str, HueLight]: ...

    def set_light_state(self, light_id: str, on: bool, brightness: Optional[int] = None) -> HueLight: ...


class HueBridgeClient:
    """
    Client for the Hue bridge REST API.

    GET  http://<bridge>/api/<username>/lights
    PUT  http://<bridge>/api/<username>/lights/<id>/state
    """

    def __init__(self, bridge_host: str, username: Optional[str], timeout: float = 5.0):
        self.bridge_host = bridge_host
        self.username = username
        self.timeout = timeout
        self._session = requests.Session()

    @property
    def base_url(self) -> str:
        return f"http://{self.bridge_host}/api/{self.username}"

    def _request(self, method: str, path: str, **kwargs) -> Any:
        if not self.username:
            raise HueBridgeError("No bridge username configured, pair the bridge first")

        url = f"{self.base_url}/{path}"
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise HueBridgeError(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            raise HueBridgeError(f"{method} {path} returned invalid JSON") from e

        # The bridge reports errors as [{"error": {...}}] with HTTP 200
        if isinstance(data, list):
            errors = [item["error"] for item in data if isinstance(item, dict) and "error" in item]
            if errors:
                description = errors[0].get("description", "unknown error")
                raise HueBridgeError(f"{method} {path}: {description}")

        return data

    def get_lights(self) -> Dict[str, HueLight]:
        data = self._request("GET", "lights")
        if not isinstance(data, dict):
            raise HueBridgeError("Unexpected response listing lights")

        lights = {}
        for light_id, light in data.items():
            state = light.get("state", {})
            lights[light_id] = HueLight(
                light_id=light_id,
                name=light.get("name", f"Hue Light {light_id}"),
                on=bool(state.get("on", False)),
                brightness=int(state.get("bri", MAX_BRIGHTNESS)),
                reachable=bool(state.get("reachable", True)),
            )
        return lights

    def set_light_state(self, light_id: str, on: bool, brightness: Optional[int] = None) -> HueLight:
        state: Dict[str, Any] = {"on": on}
        if brightness is not None:
            state["bri"] = brightness

        self._request("PUT", f"lights/{light_id}/state", json=state)

        light = self._request("GET", f"lights/{light_id}")
        light_state = light.get("state", {})
        return HueLight(
            light_id=light_id,
            name=light.get("name", f"Hue Light {light_id}"),
            on=bool(light_state.get("on", on)),
            brightness=int(light_state.get("bri", brightness or MAX_BRIGHTNESS)),
            reachable=bool(light_state.get("reachable", True)),
        )


class MockHueBridge:
    """In-memory bridge with a handful of lights."""

    def __init__(self, lights: Optional[List[HueLight]] = None):
        if lights is None:
            lights = [
                HueLight("1", "Ceiling"),
                HueLight("2", "Desk lamp", on=True, brightness=180),
                HueLight("3", "Hallway"),
            ]
        self._lights = {light.light_id: light for light in lights}
        self._lock = threading.Lock()

    def get_lights(self) -> Dict[str, HueLight]:
        with self._lock:
            return dict(self._lights)

    def set_light_state(self, light_id: str, on: bool, brightness: Optional[int] = None) -> HueLight:
        with self._lock:
            if light_id not in self._lights:
                raise HueBridgeError(f"resource, /lights/{light_id}, not available")

            light = replace(self._lights[light_id], on=on)
            if brightness is not None:
                light = replace(light, brightness=brightness)
            self._lights[light_id] = light
            return light


class PhilipsHueService(Service):
    """
    Lights and their state, through a Hue bridge.

    Descriptor options:
        lights: optional list of light ids shown for this descriptor
                (all lights when absent)
    """

    command_prefix = "philips-hue-"

    def __init__(self, bridge: HueBridge):
        self.bridge = bridge

    def get_identifier(self) -> str:
        return SERVICE_KIND

    def initialize(self) -> bool:
        """Make sure the bridge is reachable and the light list can be read."""
        try:
            lights = self.bridge.get_lights()
        except HueBridgeError as e:
            logger.error(f"Unable to reach the Philips Hue bridge: {e}")
            return False

        logger.info(f"💡 Philips Hue bridge ready, {len(lights)} lights")
        return True

    def validate(self, options: Dict[str, Any]) -> bool:
        lights = options.get("lights")
        if lights is None:
            return True

        if not isinstance(lights, list):
            return False
        return all(isinstance(light, (str, int)) and not isinstance(light, bool) for light in lights)

    def handle_command(
        self,
        client: ServerConnection,
        command: str,
        parameters: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        if command == "philips-hue-lights":
            return self._list_lights(parameters)
        if command == "philips-hue-set-light":
            return self._set_light(client, parameters)
        return None

    def _list_lights(self, parameters: Dict[str, Any]) -> Dict[str, Any]:
        options = parameters.get("options") or {}
        if not isinstance(options, dict) or not self.validate(options):
            raise CommandParameterError(f"Invalid options: {options!r}")

        lights = self.bridge.get_lights()

        wanted = options.get("lights")
        if wanted is not None:
            selected = [lights[str(light_id)] for light_id in wanted if str(light_id) in lights]
        else:
            selected = sorted(lights.values(), key=lambda light: light.name)

        return {"lights": [light.to_dict() for light in selected]}

    def _set_light(self, client: ServerConnection, parameters: Dict[str, Any]) -> Dict[str, Any]:
        light_id = parameters.get("light")
        on = parameters.get("on")
        brightness = parameters.get("brightness")

        if isinstance(light_id, bool) or not isinstance(light_id, (str, int)):
            raise CommandParameterError("'light' must be a light id")
        if not isinstance(on, bool):
            raise CommandParameterError("'on' must be a boolean")
        if brightness is not None:
            if isinstance(brightness, bool) or not isinstance(brightness, int):
                raise CommandParameterError("'brightness' must be an integer")
            if not MIN_BRIGHTNESS <= brightness <= MAX_BRIGHTNESS:
                raise CommandParameterError(
                    f"'brightness' must be in [{MIN_BRIGHTNESS}, {MAX_BRIGHTNESS}], got {brightness}"
                )

        light = self.bridge.set_light_state(str(light_id), on, brightness)
        logger.info(f"Light {light.name} ({light.light_id}) set to on={light.on} bri={light.brightness}")

        client.push(LIGHT_CHANGED_EVENT, {"light": light.to_dict()})
        return {"light": light.to_dict()}
