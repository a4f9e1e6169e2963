"""
Environment Schemas
===================

Bounded Context: Home topology as seen on the wire

A ServiceDescriptor places one service instance in a room. The server builds
them from its environment file; panels receive them as the result of the
"environment-services" command and bind one widget to each.

Wire form:
    {"label": "Desk lights", "service": "Philips Hue", "options": {...}}
"""

from dataclasses import dataclass, field
from typing import Any, Dict

from .common import require_str


@dataclass(frozen=True)
class ServiceDescriptor:
    """Placement and configuration of one service instance."""

    label: str
    service_kind: str
    options: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'label': self.label,
            'service': self.service_kind,
            'options': dict(self.options),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServiceDescriptor':
        """Deserialize from dict.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"Service descriptor must be an object, got {type(data).__name__}")

        options = data.get('options') or {}
        if not isinstance(options, dict):
            raise ValueError("Field 'options' must be an object")

        return cls(
            label=require_str(data, 'label'),
            service_kind=require_str(data, 'service'),
            options=options,
        )
