"""
Configuration schema for a Hearth panel.
"""

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from hearth_protocol.config import MQTTConfig


@dataclass(frozen=True)
class ReconnectPolicy:
    """
    Reconnection backoff.

    Applied through paho's reconnect_delay_set: the delay starts at
    min_delay and doubles after every failed attempt, capped at max_delay.
    There is no retry limit: a panel keeps trying.
    """

    min_delay: float = 1.0
    max_delay: float = 30.0

    def __post_init__(self):
        if self.min_delay <= 0:
            raise ValueError(f"min_delay must be positive, got {self.min_delay}")

        if self.max_delay < self.min_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= min_delay ({self.min_delay})"
            )


@dataclass(frozen=True)
class PanelConfig:
    """Main configuration for a panel. Immutable after construction."""

    # Panel identification (also the MQTT client id suffix)
    panel_id: str

    mqtt: MQTTConfig = field(default_factory=MQTTConfig)
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)

    def __post_init__(self):
        if not self.panel_id:
            raise ValueError("panel_id cannot be empty")

        if any(c in self.panel_id for c in "/+#"):
            raise ValueError(f"panel_id cannot contain '/', '+' or '#': {self.panel_id!r}")

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "PanelConfig":
        """
        Load configuration from YAML file.

        Example YAML:
            panel_id: "kitchen-tablet"

            mqtt:
              broker: "localhost"
              port: 1883

            reconnect:
              min_delay: 1.0
              max_delay: 30.0
        """
        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(
            panel_id=data["panel_id"],
            mqtt=MQTTConfig.from_dict(data.get("mqtt")),
            reconnect=ReconnectPolicy(**(data.get("reconnect") or {})),
        )
