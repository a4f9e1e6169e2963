"""
hearth_control - Server-side Control Plane

Bounded Context: MQTT-based command-and-control
Responsibilities:
  - MQTT connection management (Control Plane)
  - Command reception, execution and replies
  - Per-client handles for pushes

Architecture:
  - CommandRegistry: explicit registration of named command handlers
  - ServerConnection: handle addressing one connected client
  - MQTTControlPlane: MQTT client, request decoding, reply publishing

Design Philosophy:
  - Every decodable request gets exactly one reply (never silently dropped)
  - Unknown commands are a reply of kind "unhandled", not an exception
  - Thread-safe (registry uses locks, commands run on a worker pool)
"""

from .registry import CommandParameterError, CommandRegistry
from .client import ServerConnection
from .plane import CommandDelegate, MQTTControlPlane

__all__ = [
    "CommandParameterError",
    "CommandRegistry",
    "CommandDelegate",
    "MQTTControlPlane",
    "ServerConnection",
]
