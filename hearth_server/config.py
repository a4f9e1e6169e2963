"""
Configuration schema for the Hearth server.

This module defines the configuration structure for the server process:
identity, the environment source, MQTT settings and the per-integration
settings of the bundled services.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from hearth_protocol.config import MQTTConfig


@dataclass(frozen=True)
class HueConfig:
    """Philips Hue bridge configuration."""

    bridge_host: str = "philips-hue.local"
    username: Optional[str] = None  # API key issued by the bridge on pairing
    timeout: float = 5.0
    enabled: bool = True

    def __post_init__(self):
        """Validate Hue configuration."""
        if not self.bridge_host:
            raise ValueError("bridge_host cannot be empty")

        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")


@dataclass(frozen=True)
class ServerConfig:
    """
    Main configuration for the Hearth server.

    Loaded from YAML and validated at startup.
    Immutable after construction (frozen dataclass).
    """

    # Server identification (announced in the status message)
    server_id: str

    # Environment topology source
    environment_path: Path = Path("./config/environment.yaml")

    # Publish diagnostic values to panels
    debug: bool = False

    # Command worker pool size
    workers: int = 4

    mqtt: MQTTConfig = field(default_factory=MQTTConfig)
    hue: HueConfig = field(default_factory=HueConfig)

    def __post_init__(self):
        """Validate server configuration."""
        if not self.server_id:
            raise ValueError("server_id cannot be empty")

        if not 1 <= self.workers <= 64:
            raise ValueError(f"workers must be in [1, 64], got {self.workers}")

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "ServerConfig":
        """
        Load configuration from YAML file.

        Example YAML:
            server_id: "hearth-01"
            environment_path: "environment.yaml"   # relative to this file
            debug: true
            workers: 4

            mqtt:
              broker: "localhost"
              port: 1883
              topic_prefix: "hearth"
              site_id: "home"

            hue:
              bridge_host: "192.168.1.20"
              username: "<api key>"
        """
        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        # Relative environment paths are resolved against the config file
        environment_path = Path(data.get("environment_path", "environment.yaml"))
        if not environment_path.is_absolute():
            environment_path = Path(yaml_path).parent / environment_path

        return cls(
            server_id=data["server_id"],
            environment_path=environment_path,
            debug=data.get("debug", False),
            workers=data.get("workers", 4),
            mqtt=MQTTConfig.from_dict(data.get("mqtt")),
            hue=HueConfig(**(data.get("hue") or {})),
        )
