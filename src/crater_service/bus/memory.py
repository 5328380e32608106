"""In-process bus transports."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any

from crater_service.bus.base import Message
from crater_service.errors import BusError

logger = logging.getLogger(__name__)


class InMemoryListener:
    def __init__(self, bus: InMemoryBus) -> None:
        self._bus = bus

    def receive(self) -> Message | None:
        return self._bus._take()


class InMemoryBus:
    """Condition-guarded bus.

    ``close`` never blocks. Already published messages drain, then every
    listener sees end-of-stream for good. ``fail`` makes the next receive
    raise ``BusError``; after close it is ignored. Option ``max_queue`` bounds
    the backlog (0 means unbounded) and makes ``publish`` wait for room.
    """

    def __init__(self, *, max_queue: int = 0) -> None:
        self._items: deque[Any] = deque()
        self._max_queue = max(0, max_queue)
        self._closed = False
        self._cond = threading.Condition()

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, message: Message) -> None:
        with self._cond:
            while (
                not self._closed
                and self._max_queue
                and len(self._items) >= self._max_queue
            ):
                self._cond.wait()
            if self._closed:
                raise BusError("bus is closed")
            self._items.append(message)
            self._cond.notify_all()

    def fail(self, reason: str) -> None:
        with self._cond:
            if self._closed:
                logger.debug("bus event=fail_ignored backend=memory reason=%s", reason)
                return
            self._items.append(BusError(reason))
            self._cond.notify_all()

    def listen(self) -> InMemoryListener:
        return InMemoryListener(self)

    def close(self) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            pending = len(self._items)
            self._cond.notify_all()
        logger.debug("bus event=closed backend=memory pending=%d", pending)

    def _take(self) -> Message | None:
        with self._cond:
            while not self._items and not self._closed:
                self._cond.wait()
            if not self._items:
                return None
            item = self._items.popleft()
            self._cond.notify_all()
        if isinstance(item, BusError):
            raise item
        return item


class NullListener:
    def receive(self) -> Message | None:
        return None


class NullBus:
    """Bus with no traffic: every listener reports end-of-stream immediately."""

    def listen(self) -> NullListener:
        return NullListener()

    def close(self) -> None:
        return None
