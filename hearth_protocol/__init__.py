"""
Hearth Protocol Package
=======================

Bounded Context: Communication Protocol between panels and the server

Architecture:
- schemas/: Immutable message structures (requests, replies, presence, pushes)
- logging/: Structured JSON logging for observability
- topics: MQTT topic layout
- config: Broker configuration shared by server and panels

Design Philosophy:
- Every command is request/response, correlated by a per-request token
- Immutability: frozen dataclasses for message DTOs
- Observability: structured logs (JSON) for the MQTT-facing components

Example:
    >>> from hearth_protocol import CommandRequest, TopicLayout, new_token
    >>> topics = TopicLayout(prefix="hearth", site_id="home")
    >>> request = CommandRequest(
    ...     token=new_token(),
    ...     client_id="panel-1",
    ...     command="environment-rooms",
    ... )
    >>> topics.commands
    'hearth/home/commands'
"""

__version__ = "1.0.0"

from .schemas import (
    SCHEMA_VERSION,
    CommandFailure,
    CommandReply,
    CommandRequest,
    ErrorKind,
    PushMessage,
    ReplyStatus,
    ServerState,
    ServerStatus,
    ServiceDescriptor,
    Timestamp,
    new_token,
)
from .topics import TopicLayout
from .config import MQTTConfig
from .logging import LogEvent, StructuredLogger, create_logger

__all__ = [
    '__version__',
    # Schemas
    'SCHEMA_VERSION',
    'CommandFailure',
    'CommandReply',
    'CommandRequest',
    'ErrorKind',
    'PushMessage',
    'ReplyStatus',
    'ServerState',
    'ServerStatus',
    'ServiceDescriptor',
    'Timestamp',
    'new_token',
    # Transport layout & config
    'TopicLayout',
    'MQTTConfig',
    # Logging
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
