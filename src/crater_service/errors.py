"""Exception taxonomy shared by the store, the bus, and the engine."""

from __future__ import annotations


class CraterError(RuntimeError):
    """Base class for every error raised by crater_service."""


class StoreConnectionError(CraterError):
    """Raised when the database connection cannot be opened or was lost.

    The store instance that raised it is unusable; build a new one with
    ``PostgresResultStore.connect``.
    """


class SchemaError(CraterError):
    """Raised when schema creation or upgrade fails."""


class NotFoundError(CraterError, LookupError):
    """Raised when no row exists for the requested key."""


class UpsertFailure(CraterError):
    """Raised when the upsert retry ceiling is exhausted."""

    def __init__(self, table: str, attempts: int) -> None:
        super().__init__(f"upsert into {table} failed after {attempts} attempts")
        self.table = table
        self.attempts = attempts


class BusError(CraterError):
    """Raised for event bus transport failures."""
