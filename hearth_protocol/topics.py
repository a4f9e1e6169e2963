"""
MQTT topic layout shared by the server and the panels.

    <prefix>/<site_id>/commands                      client → server
    <prefix>/<site_id>/status                        server → all (retained)
    <prefix>/<site_id>/clients/<client_id>/replies   server → one client
    <prefix>/<site_id>/clients/<client_id>/push      server → one client
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TopicLayout:
    prefix: str = "hearth"
    site_id: str = "home"

    def __post_init__(self):
        for name, value in (("prefix", self.prefix), ("site_id", self.site_id)):
            if not value or any(c in value for c in "/+#"):
                raise ValueError(f"Invalid topic {name}: {value!r}")

    @property
    def base(self) -> str:
        return f"{self.prefix}/{self.site_id}"

    @property
    def commands(self) -> str:
        return f"{self.base}/commands"

    @property
    def status(self) -> str:
        return f"{self.base}/status"

    def replies(self, client_id: str) -> str:
        return f"{self.base}/clients/{client_id}/replies"

    def push(self, client_id: str) -> str:
        return f"{self.base}/clients/{client_id}/push"
