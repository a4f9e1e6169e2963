"""
Command Message Schema
======================

Bounded Context: Request/Response Data Structures

Every command a panel sends is a CommandRequest; the server always answers it
with exactly one CommandReply carrying either a result or an error. The token
correlates the two.

Message Flow:
    ClientConnection → CommandRequest → MQTT → MQTTControlPlane
    MQTTControlPlane → CommandReply → MQTT → ClientConnection
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .common import SCHEMA_VERSION, ErrorKind, Timestamp, require_str


def new_token() -> str:
    """Generate a correlation token unique to one request."""
    return uuid.uuid4().hex


class ReplyStatus(str, Enum):
    """Outcome of a command."""
    OK = "ok"
    ERROR = "error"


@dataclass(frozen=True)
class CommandRequest:
    """
    A single command sent by a client.

    Attributes:
        token: Correlation token, unique per request
        client_id: Identifier of the sending client (selects the reply topic)
        command: Command name (e.g. "environment-rooms")
        parameters: Opaque parameter object

    Example:
        >>> request = CommandRequest(
        ...     token=new_token(),
        ...     client_id="panel-kitchen",
        ...     command="environment-services",
        ...     parameters={"room": "Kitchen"},
        ... )
    """
    token: str
    client_id: str
    command: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    schema_version: str = SCHEMA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            'schema_version': self.schema_version,
            'timestamp': self.timestamp.to_dict(),
            'token': self.token,
            'client_id': self.client_id,
            'command': self.command,
            'parameters': self.parameters,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CommandRequest':
        """Deserialize from dict.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"Command request must be an object, got {type(data).__name__}")

        parameters = data.get('parameters') or {}
        if not isinstance(parameters, dict):
            raise ValueError("Field 'parameters' must be an object")

        return cls(
            token=require_str(data, 'token'),
            client_id=require_str(data, 'client_id'),
            command=require_str(data, 'command'),
            parameters=parameters,
            timestamp=Timestamp(value=data.get('timestamp') or Timestamp.now().value),
            schema_version=data.get('schema_version', SCHEMA_VERSION),
        )


@dataclass(frozen=True)
class CommandFailure:
    """Error details of a failed command."""
    kind: ErrorKind
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {'kind': self.kind.value, 'message': self.message}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CommandFailure':
        if not isinstance(data, dict):
            raise ValueError("Field 'error' must be an object")
        try:
            kind = ErrorKind(data['kind'])
        except KeyError as e:
            raise ValueError(f"Missing required failure field: {e}")
        return cls(kind=kind, message=str(data.get('message', '')))


@dataclass(frozen=True)
class CommandReply:
    """
    The answer to one CommandRequest.

    Invariants:
        - status == OK implies error is None
        - status == ERROR implies error is set
    """
    token: str
    status: ReplyStatus
    result: Optional[Dict[str, Any]] = None
    error: Optional[CommandFailure] = None
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    schema_version: str = SCHEMA_VERSION

    def __post_init__(self):
        if self.status == ReplyStatus.OK and self.error is not None:
            raise ValueError("Successful reply cannot carry an error")
        if self.status == ReplyStatus.ERROR and self.error is None:
            raise ValueError("Failed reply must carry an error")

    @classmethod
    def success(cls, token: str, result: Dict[str, Any]) -> 'CommandReply':
        return cls(token=token, status=ReplyStatus.OK, result=result)

    @classmethod
    def failure(cls, token: str, kind: ErrorKind, message: str) -> 'CommandReply':
        return cls(
            token=token,
            status=ReplyStatus.ERROR,
            error=CommandFailure(kind=kind, message=message),
        )

    @property
    def ok(self) -> bool:
        return self.status == ReplyStatus.OK

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'schema_version': self.schema_version,
            'timestamp': self.timestamp.to_dict(),
            'token': self.token,
            'status': self.status.value,
        }
        if self.ok:
            data['result'] = self.result
        else:
            data['error'] = self.error.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CommandReply':
        """Deserialize from dict.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"Command reply must be an object, got {type(data).__name__}")

        try:
            status = ReplyStatus(data['status'])
        except KeyError as e:
            raise ValueError(f"Missing required reply field: {e}")

        error = None
        if status == ReplyStatus.ERROR:
            error = CommandFailure.from_dict(data.get('error') or {})

        return cls(
            token=require_str(data, 'token'),
            status=status,
            result=data.get('result'),
            error=error,
            timestamp=Timestamp(value=data.get('timestamp') or Timestamp.now().value),
            schema_version=data.get('schema_version', SCHEMA_VERSION),
        )
