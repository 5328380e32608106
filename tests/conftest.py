from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from crater_service.bus import InMemoryBus
from crater_service.config.settings import ApiUser, BusConfig, EngineConfig, Settings
from crater_service.main import create_app
from crater_service.storage.memory import InMemoryResultStore


@pytest.fixture
def memory_store() -> InMemoryResultStore:
    return InMemoryResultStore()


@pytest.fixture
def memory_bus() -> InMemoryBus:
    return InMemoryBus()


@pytest.fixture
def api_settings() -> Settings:
    return Settings(
        users=[ApiUser(name="ci", token="s3cret")],
        engine=EngineConfig(bus=BusConfig(backend="memory")),
    )


@pytest.fixture
def client(
    memory_store: InMemoryResultStore,
    memory_bus: InMemoryBus,
    api_settings: Settings,
) -> Iterator[TestClient]:
    app = create_app(
        store=memory_store,
        settings_override=api_settings,
        bus_factory=lambda _config: memory_bus,
    )
    with TestClient(app) as test_client:
        yield test_client
