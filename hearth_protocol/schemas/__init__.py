"""
Hearth Protocol Schemas
=======================

Bounded Context: Data Structures

Immutable, typed data structures for every message exchanged between panels
and the server.

Design:
- Frozen dataclasses (immutability)
- to_dict() for JSON serialization
- from_dict() for deserialization (raises ValueError on malformed input)
- Schema versioning for evolution

Public API
----------
Common Types:
    Timestamp, ErrorKind

Command Types:
    CommandRequest, CommandReply, CommandFailure, ReplyStatus, new_token

Out-of-band Types:
    ServerState, ServerStatus, PushMessage

Topology Types:
    ServiceDescriptor
"""

from .common import SCHEMA_VERSION, ErrorKind, Timestamp
from .command import (
    CommandFailure,
    CommandReply,
    CommandRequest,
    ReplyStatus,
    new_token,
)
from .environment import ServiceDescriptor
from .status import PushMessage, ServerState, ServerStatus

__all__ = [
    # Common types
    'SCHEMA_VERSION',
    'ErrorKind',
    'Timestamp',
    # Command types
    'CommandFailure',
    'CommandReply',
    'CommandRequest',
    'ReplyStatus',
    'new_token',
    # Out-of-band types
    'PushMessage',
    'ServerState',
    'ServerStatus',
    # Topology types
    'ServiceDescriptor',
]
