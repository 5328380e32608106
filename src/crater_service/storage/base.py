"""Storage interface shared by the PostgreSQL store and the in-memory test double."""

from __future__ import annotations

from typing import Protocol

from crater_service.storage.models import (
    BuildResult,
    BuildResultKey,
    CrateRank,
    CrateVersion,
    CustomToolchain,
    DepEdge,
)


class ResultStore(Protocol):
    def upsert_build_result(self, result: BuildResult) -> None: ...

    def get_build_result(self, key: BuildResultKey) -> BuildResult: ...

    def list_build_results(self, toolchain: str) -> list[BuildResult]: ...

    def upsert_custom_toolchain(self, toolchain: CustomToolchain) -> None: ...

    def get_custom_toolchain(self, toolchain: str) -> CustomToolchain: ...

    def add_crate_version(self, version: CrateVersion) -> bool: ...

    def list_crate_versions(self, name: str | None = None) -> list[CrateVersion]: ...

    def set_crate_rank(self, rank: CrateRank) -> None: ...

    def list_crate_ranks(self, limit: int | None = None) -> list[CrateRank]: ...

    def add_dep_edge(self, edge: DepEdge) -> bool: ...

    def list_dependents(self, dep: str) -> list[str]: ...

    def close(self) -> None: ...
