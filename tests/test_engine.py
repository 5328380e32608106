from __future__ import annotations

import logging
import threading

import pytest

from crater_service.bus import InMemoryBus, Message
from crater_service.config.settings import BusConfig, EngineConfig
from crater_service.engine import Engine
from crater_service.errors import BusError
from crater_service.storage.base import ResultStore
from crater_service.storage.memory import InMemoryResultStore
from crater_service.storage.models import BuildResult, BuildResultKey
from fakes import wait_for


class ScriptedListener:
    def __init__(self, *items: Message | Exception | None) -> None:
        self.items = list(items)
        self.calls = 0

    def receive(self) -> Message | None:
        self.calls += 1
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class ScriptedBus:
    def __init__(self, listener: ScriptedListener) -> None:
        self.listener = listener
        self.listen_calls = 0
        self.closed = False

    def listen(self) -> ScriptedListener:
        self.listen_calls += 1
        return self.listener

    def close(self) -> None:
        self.closed = True


class RecordingHandler:
    def __init__(self) -> None:
        self.seen: list[str] = []

    def __call__(self, store: ResultStore, message: Message) -> None:
        self.seen.append(message.kind)


def record_build_result(store: ResultStore, message: Message) -> None:
    store.upsert_build_result(BuildResult.model_validate(message.payload))


def test_run_processes_messages_in_order_until_end_of_stream(
    memory_store: InMemoryResultStore,
) -> None:
    listener = ScriptedListener(Message(kind="m1"), Message(kind="m2"), None)
    handler = RecordingHandler()
    engine = Engine(ScriptedBus(listener), memory_store, handler=handler)

    engine.run()

    assert handler.seen == ["m1", "m2"]
    assert engine.processed == 2
    assert engine.state == "stopped"
    assert listener.calls == 3


def test_run_returns_transport_error_without_processing(
    memory_store: InMemoryResultStore,
) -> None:
    listener = ScriptedListener(BusError("broker went away"), Message(kind="m1"))
    handler = RecordingHandler()
    engine = Engine(ScriptedBus(listener), memory_store, handler=handler)

    with pytest.raises(BusError, match="broker went away"):
        engine.run()

    assert handler.seen == []
    assert engine.processed == 0
    assert engine.state == "failed"
    assert isinstance(engine.error, BusError)


def test_listener_is_opened_by_run_not_initialize(memory_store: InMemoryResultStore) -> None:
    bus = ScriptedBus(ScriptedListener(None))
    configs: list[BusConfig] = []

    def factory(config: BusConfig) -> ScriptedBus:
        configs.append(config)
        return bus

    engine = Engine.initialize(
        EngineConfig(bus=BusConfig(backend="scripted", options={"route": "crater.#"})),
        memory_store,
        bus_factory=factory,
    )
    assert engine.state == "initializing"
    assert bus.listen_calls == 0
    assert configs[0].options == {"route": "crater.#"}

    engine.run()
    assert bus.listen_calls == 1


def test_initialize_propagates_bus_connect_failure(memory_store: InMemoryResultStore) -> None:
    with pytest.raises(BusError):
        Engine.initialize(EngineConfig(bus=BusConfig(backend="pulse")), memory_store)


def test_handler_failure_marks_engine_failed(memory_store: InMemoryResultStore) -> None:
    def explode(store: ResultStore, message: Message) -> None:
        raise ValueError("bad payload")

    engine = Engine(ScriptedBus(ScriptedListener(Message(kind="m1"))), memory_store, handler=explode)

    with pytest.raises(ValueError):
        engine.run()
    assert engine.state == "failed"
    assert engine.processed == 0


def test_run_twice_is_rejected(memory_store: InMemoryResultStore) -> None:
    engine = Engine(ScriptedBus(ScriptedListener(None)), memory_store)
    engine.run()

    with pytest.raises(RuntimeError):
        engine.run()


def test_default_handler_logs_without_writing(
    memory_store: InMemoryResultStore,
    caplog: pytest.LogCaptureFixture,
) -> None:
    engine = Engine(
        ScriptedBus(ScriptedListener(Message(kind="task-defined", payload={"taskId": "x"}), None)),
        memory_store,
    )

    with caplog.at_level(logging.INFO, logger="crater_service.engine"):
        engine.run()

    assert "kind=task-defined" in caplog.text
    assert memory_store.list_build_results("nightly-2015-01-01") == []


def test_background_engine_applies_messages_to_store(
    memory_store: InMemoryResultStore,
    memory_bus: InMemoryBus,
) -> None:
    engine = Engine(memory_bus, memory_store, handler=record_build_result)
    thread = engine.start_in_background()
    payload = {
        "toolchain": "nightly-2015-01-01",
        "crate_name": "num",
        "crate_vers": "1.0.0",
        "status": "success",
        "task_id": "t1",
    }
    key = BuildResultKey(toolchain="nightly-2015-01-01", crate_name="num", crate_vers="1.0.0")

    memory_bus.publish(Message(kind="task-completed", payload=payload))

    assert wait_for(lambda: engine.processed == 1)
    assert memory_store.get_build_result(key).task_id == "t1"

    engine.stop()
    assert not thread.is_alive()
    assert engine.state == "stopped"


def test_stop_unblocks_idle_engine(
    memory_store: InMemoryResultStore,
    memory_bus: InMemoryBus,
) -> None:
    engine = Engine(memory_bus, memory_store)
    thread = engine.start_in_background()
    assert wait_for(lambda: engine.state == "running")

    engine.stop(timeout=5.0)

    assert not thread.is_alive()
    assert engine.state == "stopped"
    assert engine.error is None


def test_background_failure_is_recorded(
    memory_store: InMemoryResultStore,
    memory_bus: InMemoryBus,
) -> None:
    engine = Engine(memory_bus, memory_store)
    memory_bus.fail("channel closed by broker")

    thread = engine.start_in_background()
    thread.join(timeout=5.0)

    assert engine.state == "failed"
    assert isinstance(engine.error, BusError)


def test_stop_returns_while_bounded_bus_is_full(memory_store: InMemoryResultStore) -> None:
    bus = InMemoryBus(max_queue=1)
    entered = threading.Event()
    release = threading.Event()

    def slow(store: ResultStore, message: Message) -> None:
        entered.set()
        release.wait(timeout=5.0)

    engine = Engine(bus, memory_store, handler=slow)
    engine.start_in_background()
    bus.publish(Message(kind="m1"))
    assert entered.wait(timeout=5.0)
    bus.publish(Message(kind="m2"))

    stopper = threading.Thread(target=engine.stop, kwargs={"timeout": 5.0})
    stopper.start()
    assert wait_for(lambda: bus.closed)
    release.set()
    stopper.join(timeout=5.0)

    assert not stopper.is_alive()
    assert engine.state == "stopped"
    assert engine.processed == 1
