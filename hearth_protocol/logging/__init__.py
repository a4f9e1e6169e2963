"""
Structured Logging for Hearth
=============================

Bounded Context: Observability

JSON-structured logging for the MQTT-facing components.

Public API
----------
    LogEvent: Typed event names (enum)
    StructuredLogger: JSON logger implementation
    create_logger: Factory function

Example:
    >>> from hearth_protocol.logging import StructuredLogger, LogEvent
    >>> logger = StructuredLogger(component="control_plane")
    >>> logger.info(
    ...     event=LogEvent.COMMAND_RECEIVED,
    ...     message="Command received",
    ...     metadata={'command': 'environment-rooms'}
    ... )
"""

from .events import LogEvent
from .structured import StructuredLogger, create_logger

__all__ = [
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
