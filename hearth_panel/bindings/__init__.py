"""
Service bindings for the panel.

default_registry() returns a BindingRegistry with every bundled binding.
"""

from .base import (
    BindingContext,
    BindingFactory,
    BindingRegistry,
    ServiceBinding,
    UnrecognizedServiceKindError,
)
from .philips_hue import PhilipsHueBinding, SERVICE_KIND as PHILIPS_HUE


def default_registry() -> BindingRegistry:
    registry = BindingRegistry()
    registry.register(PHILIPS_HUE, PhilipsHueBinding)
    return registry


__all__ = [
    "BindingContext",
    "BindingFactory",
    "BindingRegistry",
    "PhilipsHueBinding",
    "ServiceBinding",
    "UnrecognizedServiceKindError",
    "default_registry",
]
