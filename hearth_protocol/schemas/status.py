"""
Server Status & Push Message Schemas
====================================

Bounded Context: Out-of-band Server → Client Messages

- ServerStatus: retained presence message. The server publishes ONLINE when it
  starts and registers OFFLINE as its MQTT last will, so panels learn about a
  crashed server without waiting for a command to fail.
- PushMessage: unsolicited message addressed to a single client, e.g. a light
  state change caused by that client's own command.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple

from .common import SCHEMA_VERSION, Timestamp, require_str


class ServerState(str, Enum):
    """Presence of the server process."""
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass(frozen=True)
class ServerStatus:
    """
    Presence announcement of the server.

    Attributes:
        state: ONLINE or OFFLINE
        server_id: Identifier of the announcing server
        debug: Free-form diagnostic lines displayed by panels

    Example:
        >>> status = ServerStatus(
        ...     state=ServerState.ONLINE,
        ...     server_id="hearth-01",
        ...     debug=("server: hearth-01", "services: Philips Hue"),
        ... )
    """
    state: ServerState
    server_id: str
    debug: Tuple[str, ...] = ()
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    schema_version: str = SCHEMA_VERSION

    @property
    def online(self) -> bool:
        return self.state == ServerState.ONLINE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'schema_version': self.schema_version,
            'timestamp': self.timestamp.to_dict(),
            'state': self.state.value,
            'server_id': self.server_id,
            'debug': list(self.debug),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServerStatus':
        """Deserialize from dict.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"Server status must be an object, got {type(data).__name__}")

        try:
            state = ServerState(data['state'])
        except KeyError as e:
            raise ValueError(f"Missing required status field: {e}")

        debug = data.get('debug') or []
        if not isinstance(debug, list):
            raise ValueError("Field 'debug' must be a list")

        return cls(
            state=state,
            server_id=require_str(data, 'server_id'),
            debug=tuple(str(value) for value in debug),
            timestamp=Timestamp(value=data.get('timestamp') or Timestamp.now().value),
            schema_version=data.get('schema_version', SCHEMA_VERSION),
        )


@dataclass(frozen=True)
class PushMessage:
    """Unsolicited server → client message."""
    event: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: Timestamp = field(default_factory=Timestamp.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.to_dict(),
            'event': self.event,
            'payload': self.payload,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PushMessage':
        if not isinstance(data, dict):
            raise ValueError(f"Push message must be an object, got {type(data).__name__}")

        payload = data.get('payload') or {}
        if not isinstance(payload, dict):
            raise ValueError("Field 'payload' must be an object")

        return cls(
            event=require_str(data, 'event'),
            payload=payload,
            timestamp=Timestamp(value=data.get('timestamp') or Timestamp.now().value),
        )
