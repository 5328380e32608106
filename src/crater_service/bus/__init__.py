"""Event bus interface and in-process transports."""

from crater_service.bus.base import Bus, Listener, Message
from crater_service.bus.connect import BUS_BACKENDS, connect_bus
from crater_service.bus.memory import InMemoryBus, InMemoryListener, NullBus, NullListener

__all__ = [
    "BUS_BACKENDS",
    "Bus",
    "InMemoryBus",
    "InMemoryListener",
    "Listener",
    "Message",
    "NullBus",
    "NullListener",
    "connect_bus",
]
