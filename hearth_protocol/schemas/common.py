"""
Common Schema Types
==================

Bounded Context: Shared Data Structures

Types shared by every message travelling between panels and the server.

Design Principles:
- Immutability: frozen=True prevents accidental mutation
- Serialization: to_dict()/from_dict() for JSON
- Validation: from_dict() raises ValueError on malformed input
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

SCHEMA_VERSION = "1.0"


class ErrorKind(str, Enum):
    """Error categories carried by a failed CommandReply."""
    UNHANDLED = "unhandled"              # No component claimed the command
    INVALID_REQUEST = "invalid_request"  # Undecodable request or rejected parameters
    INTERNAL = "internal"                # A handler raised unexpectedly


@dataclass(frozen=True)
class Timestamp:
    """
    Immutable ISO 8601 timestamp wrapper (UTC).

    Example:
        >>> ts = Timestamp.now()
        >>> ts.value
        '2025-10-24T15:30:45.123456+00:00'
    """
    value: str

    @classmethod
    def now(cls) -> 'Timestamp':
        """Create timestamp from current time."""
        return cls(value=datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> str:
        """Serialize to JSON (as string)."""
        return self.value


def require_str(data: dict, key: str) -> str:
    """Read a mandatory, non-empty string field from a decoded message."""
    try:
        value = data[key]
    except KeyError as e:
        raise ValueError(f"Missing required field: {e}")

    if not isinstance(value, str) or not value:
        raise ValueError(f"Field '{key}' must be a non-empty string, got {value!r}")
    return value
