from __future__ import annotations

import os
import threading
from collections.abc import Callable, Iterator

import pytest
from psycopg.conninfo import conninfo_to_dict

from crater_service.config.settings import DatabaseConfig
from crater_service.storage.postgres import PostgresResultStore


@pytest.fixture(scope="session")
def db_config() -> DatabaseConfig:
    if os.getenv("RUN_POSTGRES_INTEGRATION_TESTS") != "1":
        pytest.skip(
            "Set RUN_POSTGRES_INTEGRATION_TESTS=1 and CRATER_TEST_DATABASE_URL "
            "to run integration tests against PostgreSQL."
        )
    database_url = os.getenv("CRATER_TEST_DATABASE_URL")
    if not database_url:
        pytest.skip("CRATER_TEST_DATABASE_URL is required for integration tests.")

    params = conninfo_to_dict(database_url)
    return DatabaseConfig(
        database_name=str(params.get("dbname", "crater-test")),
        username=str(params.get("user", "crater-test")),
        password=str(params.get("password", "")),
        host=str(params.get("host", "localhost")),
        port=int(params.get("port", 5432)),
    )


@pytest.fixture(scope="session")
def db_lock() -> threading.Lock:
    """Serialises destructive teardown-then-populate sequences between tests."""
    return threading.Lock()


@pytest.fixture
def connect_store(db_config: DatabaseConfig) -> Iterator[Callable[[], PostgresResultStore]]:
    opened: list[PostgresResultStore] = []

    def _connect() -> PostgresResultStore:
        store = PostgresResultStore.connect(db_config)
        opened.append(store)
        return store

    yield _connect
    for store in opened:
        store.close()


@pytest.fixture
def store(
    db_lock: threading.Lock,
    connect_store: Callable[[], PostgresResultStore],
) -> Iterator[PostgresResultStore]:
    with db_lock:
        connect_store().delete_tables_and_close()
        yield connect_store()
