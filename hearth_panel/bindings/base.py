"""
Service bindings - panel-side counterpart of a server Service.

A ServiceBinding pairs one ServiceDescriptor with the widget rendering it.
Bindings are created by kind through a BindingRegistry: register a factory per
service kind at startup, look it up when binding, fail closed on a miss.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict

from hearth_protocol.schemas import ServiceDescriptor

from ..connection import ClientConnection
from ..surface import PanelSurface, ServiceWidget


class UnrecognizedServiceKindError(Exception):
    """A descriptor names a service kind no binding is registered for."""

    def __init__(self, service_kind: str):
        super().__init__(f"Unrecognized service kind: {service_kind!r}")
        self.service_kind = service_kind


@dataclass(frozen=True)
class BindingContext:
    """What a binding may use while it is alive."""

    connection: ClientConnection
    surface: PanelSurface


class ServiceBinding(ABC):
    """
    Live object owning one widget for one descriptor.

    Owned by the PanelController that created it; destroy() is always called
    before the next generation of bindings is created.
    """

    def __init__(self, descriptor: ServiceDescriptor, context: BindingContext):
        self.descriptor = descriptor
        self.context = context
        self.widget: ServiceWidget = context.surface.add_service_widget(descriptor.label)
        self._destroyed = False

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @abstractmethod
    def activate(self) -> None:
        """Start rendering (fetch initial state, subscribe to pushes)."""

    def destroy(self) -> None:
        """Tear the widget down. Idempotent."""
        if self._destroyed:
            return
        self._destroyed = True
        self.widget.set_action_handler(None)
        self.widget.remove()


BindingFactory = Callable[[ServiceDescriptor, BindingContext], ServiceBinding]


class BindingRegistry:
    """
    Service kind -> binding factory.

    Example:
        registry = BindingRegistry()
        registry.register("Philips Hue", PhilipsHueBinding)

        binding = registry.create(descriptor, context)
    """

    def __init__(self):
        self._factories: Dict[str, BindingFactory] = {}
        self._lock = threading.Lock()

    def register(self, service_kind: str, factory: BindingFactory) -> None:
        """
        Raises:
            ValueError: If the kind is already registered
        """
        with self._lock:
            if service_kind in self._factories:
                raise ValueError(f"Binding for '{service_kind}' already registered")
            self._factories[service_kind] = factory

    def create(self, descriptor: ServiceDescriptor, context: BindingContext) -> ServiceBinding:
        """
        Build and activate the binding for a descriptor.

        Raises:
            UnrecognizedServiceKindError: No factory for descriptor.service_kind
        """
        factory = self._factories.get(descriptor.service_kind)
        if factory is None:
            raise UnrecognizedServiceKindError(descriptor.service_kind)

        binding = factory(descriptor, context)
        binding.activate()
        return binding
