"""
Structured Log Event Types
==========================

Bounded Context: Observability Event Taxonomy

Typed event names for structured logging, following the
<component>.<category>.<action> convention.

    component: mqtt, command, status, push, panel, error

Example Log Query (Loki):
    {app="hearth"} | json | event = "command.unhandled"
"""

from enum import Enum


class LogEvent(str, Enum):
    """
    Typed log event names for structured logging.

    Categories:
    - mqtt.*: MQTT broker interactions
    - command.*: Command request/response lifecycle
    - status.*, push.*: Out-of-band server messages
    - panel.*: Panel connection state machine
    - error.*: Error conditions
    """

    # ========== MQTT Events ==========
    MQTT_CONNECTED = "mqtt.connected"
    """MQTT broker connection established."""

    MQTT_DISCONNECTED = "mqtt.disconnected"
    """MQTT broker connection lost."""

    MQTT_RECONNECTING = "mqtt.reconnecting"
    """Attempting to reconnect to broker."""

    # ========== Command Events ==========
    COMMAND_RECEIVED = "command.received"
    """Server received a command request."""

    COMMAND_HANDLED = "command.handled"
    """A component produced a result for the command."""

    COMMAND_UNHANDLED = "command.unhandled"
    """No component claimed the command."""

    COMMAND_SENT = "command.sent"
    """Client published a command request."""

    COMMAND_RESOLVED = "command.resolved"
    """Client matched a reply to its pending request."""

    COMMAND_REJECTED = "command.rejected"
    """Pending request failed (error reply or connection loss)."""

    # ========== Out-of-band Events ==========
    STATUS_PUBLISHED = "status.published"
    """Server presence published."""

    STATUS_RECEIVED = "status.received"
    """Client received server presence."""

    PUSH_SENT = "push.sent"
    """Server pushed a message to one client."""

    PUSH_RECEIVED = "push.received"
    """Client received a pushed message."""

    # ========== Panel Events ==========
    PANEL_CONNECTED = "panel.connected"
    """Panel connection reached CONNECTED."""

    PANEL_DISCONNECTED = "panel.disconnected"
    """Panel connection dropped out of CONNECTED."""

    PANEL_FATAL = "panel.fatal"
    """Panel entered the terminal fatal-error state."""

    # ========== Error Events ==========
    DESERIALIZATION_ERROR = "error.deserialization"
    """Failed to deserialize message from JSON."""

    SCHEMA_VALIDATION_ERROR = "error.schema_validation"
    """Message failed schema validation."""

    UNKNOWN_TOKEN = "error.unknown_token"
    """Reply carried a token with no pending request."""

    HANDLER_ERROR = "error.handler"
    """A command handler raised unexpectedly."""

    MQTT_CONNECTION_ERROR = "error.mqtt_connection"
    """Failed to connect to MQTT broker."""

    MQTT_PUBLISH_ERROR = "error.mqtt_publish"
    """Error during message publication."""

