"""Storage backends and models."""

from crater_service.storage.base import ResultStore
from crater_service.storage.memory import InMemoryResultStore
from crater_service.storage.models import (
    BuildResult,
    BuildResultKey,
    BuildStatus,
    CrateRank,
    CrateVersion,
    CustomToolchain,
    DepEdge,
)
from crater_service.storage.postgres import UPSERT_RETRY_LIMIT, PostgresResultStore

__all__ = [
    "UPSERT_RETRY_LIMIT",
    "BuildResult",
    "BuildResultKey",
    "BuildStatus",
    "CrateRank",
    "CrateVersion",
    "CustomToolchain",
    "DepEdge",
    "InMemoryResultStore",
    "PostgresResultStore",
    "ResultStore",
]
