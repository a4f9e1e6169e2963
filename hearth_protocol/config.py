"""
MQTT broker configuration shared by the server and panel configs.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .topics import TopicLayout


@dataclass(frozen=True)
class MQTTConfig:
    """MQTT broker configuration."""

    broker: str = "localhost"
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    qos: int = 1  # Commands are request/response, never fire-and-forget
    keepalive: int = 60

    topic_prefix: str = "hearth"
    site_id: str = "home"

    def __post_init__(self):
        """Validate MQTT configuration."""
        if not self.broker:
            raise ValueError("MQTT broker cannot be empty")

        if not 1 <= self.port <= 65535:
            raise ValueError(
                f"MQTT port must be in [1, 65535], got {self.port}"
            )

        if self.qos not in {0, 1, 2}:
            raise ValueError(
                f"MQTT QoS must be 0, 1, or 2, got {self.qos}"
            )

        if self.keepalive <= 0:
            raise ValueError(f"keepalive must be positive, got {self.keepalive}")

        # Raises ValueError for unusable topic segments
        TopicLayout(prefix=self.topic_prefix, site_id=self.site_id)

    @property
    def topics(self) -> TopicLayout:
        return TopicLayout(prefix=self.topic_prefix, site_id=self.site_id)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MQTTConfig":
        return cls(**(data or {}))
