"""
Bundled integrations.

create_services() builds the service set for a ServerConfig; use_mock swaps
the real bridges for in-memory ones.
"""

from typing import List

from ..config import ServerConfig
from ..service import Service
from .philips_hue import (
    HueBridge,
    HueBridgeClient,
    HueBridgeError,
    HueLight,
    MockHueBridge,
    PhilipsHueService,
)


def create_services(config: ServerConfig, use_mock: bool = False) -> List[Service]:
    services: List[Service] = []

    if config.hue.enabled:
        if use_mock:
            bridge: HueBridge = MockHueBridge()
        else:
            bridge = HueBridgeClient(
                bridge_host=config.hue.bridge_host,
                username=config.hue.username,
                timeout=config.hue.timeout,
            )
        services.append(PhilipsHueService(bridge))

    return services


__all__ = [
    "create_services",
    "HueBridge",
    "HueBridgeClient",
    "HueBridgeError",
    "HueLight",
    "MockHueBridge",
    "PhilipsHueService",
]
