"""Bus transport selection."""

from __future__ import annotations

import logging

from crater_service.bus.base import Bus
from crater_service.bus.memory import InMemoryBus, NullBus
from crater_service.config.settings import BusConfig
from crater_service.errors import BusError

logger = logging.getLogger(__name__)

BUS_BACKENDS = ("memory", "null")


def connect_bus(config: BusConfig) -> Bus:
    """Build the transport named by ``config.backend``, passing ``options`` through."""
    backend = config.backend.strip().lower()
    logger.info("bus event=connect backend=%s", backend)
    try:
        if backend == "memory":
            return InMemoryBus(**config.options)
        if backend == "null":
            return NullBus(**config.options)
    except TypeError as exc:
        raise BusError(f"invalid options for bus backend {backend!r}: {exc}") from exc
    raise BusError(
        f"unknown bus backend {config.backend!r}; expected one of {', '.join(BUS_BACKENDS)}"
    )
