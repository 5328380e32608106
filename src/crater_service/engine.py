"""Update engine: drains the event bus and applies each message to the result store.

Lifecycle: ``initializing -> running -> stopped``; ``failed`` is reachable from
either of the first two. ``run`` blocks until end-of-stream, a transport
error, or ``stop``; ``start_in_background`` runs it on a daemon thread so the
HTTP API keeps serving reads against the same store.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Literal

from crater_service.bus import Bus, Message, connect_bus
from crater_service.config.settings import BusConfig, EngineConfig
from crater_service.storage.base import ResultStore

logger = logging.getLogger(__name__)

EngineState = Literal["initializing", "running", "stopped", "failed"]
MessageHandler = Callable[[ResultStore, Message], None]
BusFactory = Callable[[BusConfig], Bus]


def log_message(store: ResultStore, message: Message) -> None:
    """Default handler. Message payloads have no agreed schema yet, so nothing is written."""
    logger.info(
        "engine event=message kind=%s payload_keys=%s",
        message.kind,
        sorted(message.payload),
    )


class Engine:
    """Owns one bus connection and the listener opened by ``run``."""

    def __init__(
        self,
        bus: Bus,
        store: ResultStore,
        *,
        handler: MessageHandler | None = None,
    ) -> None:
        self._bus = bus
        self._store = store
        self._handler = handler or log_message
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.state: EngineState = "initializing"
        self.processed = 0
        self.error: Exception | None = None

    @classmethod
    def initialize(
        cls,
        config: EngineConfig,
        store: ResultStore,
        *,
        handler: MessageHandler | None = None,
        bus_factory: BusFactory = connect_bus,
    ) -> Engine:
        """Connect to the bus. The listener is not opened until ``run``."""
        bus = bus_factory(config.bus)
        return cls(bus, store, handler=handler)

    def run(self) -> None:
        if self.state != "initializing":
            raise RuntimeError(f"engine cannot run from state {self.state!r}")
        self.state = "running"
        logger.info("engine event=start")
        try:
            listener = self._bus.listen()
            while not self._stop_event.is_set():
                message = listener.receive()
                if message is None:
                    logger.info("engine event=end_of_stream processed=%d", self.processed)
                    break
                self._handler(self._store, message)
                self.processed += 1
        except Exception as exc:
            self.state = "failed"
            self.error = exc
            logger.warning(
                "engine event=failed processed=%d reason=%s", self.processed, exc
            )
            raise
        self.state = "stopped"
        logger.info("engine event=stopped processed=%d", self.processed)

    def start_in_background(self) -> threading.Thread:
        thread = threading.Thread(target=self._run_in_thread, name="crater-engine", daemon=True)
        self._thread = thread
        thread.start()
        return thread

    def stop(self, timeout: float | None = 5.0) -> None:
        """Ask the loop to exit and close the bus so a blocked receive returns."""
        self._stop_event.set()
        self._bus.close()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("engine event=stop_timeout timeout_s=%s", timeout)

    def _run_in_thread(self) -> None:
        try:
            self.run()
        except Exception:  # noqa: BLE001
            # Kept on self.error and reported by /health.
            logger.exception("engine event=background_failure")
