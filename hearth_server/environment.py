"""
Environment - room/service topology of the home.

Bounded Context: Topology and environment-scoped commands
Responsibilities:
  - Parse and validate the topology from a configuration source
  - Answer read-only queries (rooms, services per room)
  - Claim the environment-* commands, return None for anything else

An Environment is immutable once built. Reloading builds a new instance and the
server swaps the reference; nobody mutates one in place.

Example YAML:
    rooms:
      - Kitchen
      - Office

    services:
      - room: Office
        label: Desk lights
        service: Philips Hue
        options:
          lights: [3, 4]
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from hearth_control.registry import CommandRegistry
from hearth_protocol.schemas import ServiceDescriptor

logger = logging.getLogger(__name__)

EnvironmentSource = Union[str, Path, Mapping[str, Any]]


class EnvironmentLoadError(Exception):
    """The configuration source is malformed or violates a topology invariant."""


class Environment:
    """
    Immutable room/service topology.

    Invariant: every room referenced by a descriptor exists in `rooms`.
    """

    def __init__(
        self,
        rooms: Tuple[str, ...],
        services: Mapping[str, Tuple[ServiceDescriptor, ...]],
    ):
        self._rooms = tuple(rooms)
        self._services = {room: tuple(descriptors) for room, descriptors in services.items()}

        self._commands = CommandRegistry()
        self._commands.register("environment-rooms", self._command_rooms)
        self._commands.register("environment-services", self._command_services)

    # ===== Construction =====

    @classmethod
    def empty(cls) -> "Environment":
        return cls(rooms=(), services={})

    @classmethod
    def from_source(cls, source: EnvironmentSource) -> "Environment":
        """
        Parse and validate a topology.

        Args:
            source: Path to a YAML (or JSON) document, or an already-loaded mapping

        Raises:
            EnvironmentLoadError: unreadable/malformed source or violated invariant.
                A partially built topology is never returned.
        """
        if isinstance(source, Mapping):
            data = source
        else:
            try:
                with open(source) as f:
                    data = yaml.safe_load(f)
            except OSError as e:
                raise EnvironmentLoadError(f"Unable to read {source}: {e}") from e
            except yaml.YAMLError as e:
                raise EnvironmentLoadError(f"Unable to parse {source}: {e}") from e

        if not isinstance(data, Mapping):
            raise EnvironmentLoadError("Environment must be a mapping with 'rooms' and 'services'")

        rooms = cls._parse_rooms(data.get("rooms", []))
        services = cls._parse_services(data.get("services", []), rooms)

        return cls(rooms=rooms, services=services)

    @staticmethod
    def _parse_rooms(raw: Any) -> Tuple[str, ...]:
        if not isinstance(raw, list):
            raise EnvironmentLoadError("'rooms' must be a list of room names")

        rooms: List[str] = []
        for room in raw:
            if not isinstance(room, str) or not room:
                raise EnvironmentLoadError(f"Invalid room name: {room!r}")
            if room in rooms:
                raise EnvironmentLoadError(f"Duplicate room: {room!r}")
            rooms.append(room)

        return tuple(rooms)

    @staticmethod
    def _parse_services(raw: Any, rooms: Tuple[str, ...]) -> Dict[str, Tuple[ServiceDescriptor, ...]]:
        if not isinstance(raw, list):
            raise EnvironmentLoadError("'services' must be a list")

        services: Dict[str, List[ServiceDescriptor]] = {}
        for index, entry in enumerate(raw):
            if not isinstance(entry, Mapping):
                raise EnvironmentLoadError(f"services[{index}] must be a mapping")

            for key in ("room", "label", "service"):
                if not isinstance(entry.get(key), str) or not entry[key]:
                    raise EnvironmentLoadError(f"services[{index}] is missing '{key}'")

            room = entry["room"]
            if room not in rooms:
                raise EnvironmentLoadError(
                    f"services[{index}] references unknown room {room!r}"
                )

            options = entry.get("options") or {}
            if not isinstance(options, Mapping):
                raise EnvironmentLoadError(f"services[{index}].options must be a mapping")

            services.setdefault(room, []).append(ServiceDescriptor(
                label=entry["label"],
                service_kind=entry["service"],
                options=dict(options),
            ))

        return {room: tuple(descriptors) for room, descriptors in services.items()}

    # ===== Queries =====

    @property
    def rooms(self) -> Tuple[str, ...]:
        return self._rooms

    def services_for(self, room: str) -> Tuple[ServiceDescriptor, ...]:
        """Descriptors of a room in configuration order; empty for unknown rooms."""
        return self._services.get(room, ())

    def descriptors(self) -> List[ServiceDescriptor]:
        """All descriptors, rooms in configuration order."""
        return [d for room in self._rooms for d in self._services.get(room, ())]

    # ===== Commands =====

    def dispatch_command(self, command: str, parameters: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Handle an environment-* command, or return None when it is not ours."""
        return self._commands.dispatch(command, parameters)

    def _command_rooms(self, parameters: Dict[str, Any]) -> Dict[str, Any]:
        return {"rooms": list(self._rooms)}

    def _command_services(self, parameters: Dict[str, Any]) -> Dict[str, Any]:
        room = parameters.get("room")
        if not isinstance(room, str) or room not in self._rooms:
            logger.debug(f"Services requested for unknown room {room!r}")
            return {"services": []}

        return {"services": [d.to_dict() for d in self.services_for(room)]}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Environment):
            return NotImplemented
        return self._rooms == other._rooms and self._services == other._services

    __hash__ = None

    def __repr__(self) -> str:
        return f"Environment(rooms={list(self._rooms)}, services={sum(map(len, self._services.values()))})"
