"""In-memory result store for tests only."""

from __future__ import annotations

import threading

from crater_service.errors import NotFoundError
from crater_service.storage.models import (
    BuildResult,
    BuildResultKey,
    CrateRank,
    CrateVersion,
    CustomToolchain,
    DepEdge,
)


class InMemoryResultStore:
    """Dict-backed implementation of ResultStore."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._build_results: dict[tuple[str, str, str], BuildResult] = {}
        self._custom_toolchains: dict[str, CustomToolchain] = {}
        self._crate_versions: set[tuple[str, str]] = set()
        self._crate_ranks: dict[str, int] = {}
        self._dep_edges: set[tuple[str, str]] = set()
        self.closed = False

    def upsert_build_result(self, result: BuildResult) -> None:
        key = (result.toolchain, result.crate_name, result.crate_vers)
        with self._lock:
            self._build_results[key] = result.model_copy()

    def get_build_result(self, key: BuildResultKey) -> BuildResult:
        with self._lock:
            found = self._build_results.get((key.toolchain, key.crate_name, key.crate_vers))
        if found is None:
            raise NotFoundError(
                f"no build result for {key.toolchain} {key.crate_name} {key.crate_vers}"
            )
        return found.model_copy()

    def list_build_results(self, toolchain: str) -> list[BuildResult]:
        with self._lock:
            matches = [
                result.model_copy()
                for (name, _, _), result in self._build_results.items()
                if name == toolchain
            ]
        return sorted(matches, key=lambda item: (item.crate_name, item.crate_vers))

    def upsert_custom_toolchain(self, toolchain: CustomToolchain) -> None:
        with self._lock:
            self._custom_toolchains[toolchain.toolchain] = toolchain.model_copy()

    def get_custom_toolchain(self, toolchain: str) -> CustomToolchain:
        with self._lock:
            found = self._custom_toolchains.get(toolchain)
        if found is None:
            raise NotFoundError(f"no custom toolchain {toolchain}")
        return found.model_copy()

    def add_crate_version(self, version: CrateVersion) -> bool:
        entry = (version.name, version.version)
        with self._lock:
            if entry in self._crate_versions:
                return False
            self._crate_versions.add(entry)
        return True

    def list_crate_versions(self, name: str | None = None) -> list[CrateVersion]:
        with self._lock:
            entries = sorted(self._crate_versions)
        return [
            CrateVersion(name=crate, version=version)
            for crate, version in entries
            if name is None or crate == name
        ]

    def set_crate_rank(self, rank: CrateRank) -> None:
        with self._lock:
            self._crate_ranks[rank.name] = rank.rank

    def list_crate_ranks(self, limit: int | None = None) -> list[CrateRank]:
        with self._lock:
            ordered = sorted(self._crate_ranks.items(), key=lambda item: (item[1], item[0]))
        if limit is not None:
            ordered = ordered[:limit]
        return [CrateRank(name=name, rank=rank) for name, rank in ordered]

    def add_dep_edge(self, edge: DepEdge) -> bool:
        entry = (edge.name, edge.dep)
        with self._lock:
            if entry in self._dep_edges:
                return False
            self._dep_edges.add(entry)
        return True

    def list_dependents(self, dep: str) -> list[str]:
        with self._lock:
            return sorted(name for name, target in self._dep_edges if target == dep)

    def close(self) -> None:
        self.closed = True
