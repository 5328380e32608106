"""Test doubles shared by the unit tests."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

AUTH_HEADERS = {"X-Crater-User": "ci", "X-Crater-Token": "s3cret"}


class FakeCursor:
    def __init__(self, *, rowcount: int = 0, rows: list[dict[str, Any]] | None = None) -> None:
        self.rowcount = rowcount
        self._rows = rows or []

    def fetchone(self) -> dict[str, Any] | None:
        return self._rows[0] if self._rows else None

    def fetchall(self) -> list[dict[str, Any]]:
        return list(self._rows)


class ScriptedConnection:
    """Stand-in for a psycopg connection.

    Each ``execute`` call consumes the next scripted response: a FakeCursor is
    returned, an exception is raised. An exhausted script returns empty cursors.
    """

    def __init__(self, *responses: FakeCursor | Exception) -> None:
        self.responses = list(responses)
        self.queries: list[tuple[str, Any]] = []
        self.transactions = 0
        self.closed = False

    def execute(self, query: str, params: Any = None) -> FakeCursor:
        self.queries.append((" ".join(query.split()), params))
        response = self.responses.pop(0) if self.responses else FakeCursor()
        if isinstance(response, Exception):
            raise response
        return response

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self.transactions += 1
        yield

    def close(self) -> None:
        self.closed = True

    @property
    def verbs(self) -> list[str]:
        return [query.split(" ", 1)[0] for query, _ in self.queries]


def wait_for(predicate: Callable[[], bool], timeout_s: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
