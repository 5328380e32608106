"""PostgreSQL-backed result store with schema bootstrap on connect.

The store holds one live connection in autocommit mode. Request handlers and
the engine thread share it; psycopg serialises statements on a connection, so
no extra locking happens here. Concurrent writers to the same key are handled
by the bounded upsert loop instead.
"""

from __future__ import annotations

import logging
from typing import Any

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import dict_row

from crater_service.config.settings import DatabaseConfig
from crater_service.errors import NotFoundError, StoreConnectionError, UpsertFailure
from crater_service.storage.models import (
    BuildResult,
    BuildResultKey,
    CrateRank,
    CrateVersion,
    CustomToolchain,
    DepEdge,
)
from crater_service.storage.schema import drop_schema, ensure_schema

logger = logging.getLogger(__name__)

# Update/insert pairs attempted before an upsert gives up.
UPSERT_RETRY_LIMIT = 10


class PostgresResultStore:
    """Persist build results and crate catalog data in PostgreSQL."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    @classmethod
    def connect(cls, config: DatabaseConfig) -> PostgresResultStore:
        """Open a connection and make sure the schema exists."""
        try:
            conn = psycopg.connect(**config.conninfo(), autocommit=True, row_factory=dict_row)
        except psycopg.OperationalError as exc:
            raise StoreConnectionError(
                f"cannot connect to {config.host}:{config.port}/{config.database_name}: {exc}"
            ) from exc
        try:
            ensure_schema(conn)
        except Exception:
            conn.close()
            raise
        logger.info(
            "store event=connected host=%s port=%s database=%s",
            config.host,
            config.port,
            config.database_name,
        )
        return cls(conn)

    def __enter__(self) -> PostgresResultStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return bool(self._conn.closed)

    def close(self) -> None:
        if not self._conn.closed:
            self._conn.close()
            logger.info("store event=closed")

    def delete_tables_and_close(self) -> None:
        """Drop every table, then close. Only test fixtures call this."""
        try:
            drop_schema(self._conn)
        finally:
            self.close()

    # -- build results -----------------------------------------------------

    def upsert_build_result(self, result: BuildResult) -> None:
        self._upsert(
            "build_results",
            update_sql="""
                UPDATE build_results
                SET status = %(status)s,
                    task_id = %(task_id)s
                WHERE toolchain = %(toolchain)s
                  AND crate_name = %(crate_name)s
                  AND crate_vers = %(crate_vers)s
                """,
            insert_sql="""
                INSERT INTO build_results (toolchain, crate_name, crate_vers, status, task_id)
                VALUES (%(toolchain)s, %(crate_name)s, %(crate_vers)s, %(status)s, %(task_id)s)
                """,
            params=result.model_dump(),
        )

    def get_build_result(self, key: BuildResultKey) -> BuildResult:
        row = self._execute(
            """
            SELECT toolchain, crate_name, crate_vers, status, task_id
            FROM build_results
            WHERE toolchain = %(toolchain)s
              AND crate_name = %(crate_name)s
              AND crate_vers = %(crate_vers)s
            """,
            key.model_dump(),
        ).fetchone()
        if row is None:
            raise NotFoundError(
                f"no build result for {key.toolchain} {key.crate_name} {key.crate_vers}"
            )
        return BuildResult.model_validate(row)

    def list_build_results(self, toolchain: str) -> list[BuildResult]:
        rows = self._execute(
            """
            SELECT toolchain, crate_name, crate_vers, status, task_id
            FROM build_results
            WHERE toolchain = %(toolchain)s
            ORDER BY crate_name, crate_vers
            """,
            {"toolchain": toolchain},
        ).fetchall()
        return [BuildResult.model_validate(row) for row in rows]

    # -- custom toolchains -------------------------------------------------

    def upsert_custom_toolchain(self, toolchain: CustomToolchain) -> None:
        self._upsert(
            "custom_toolchains",
            update_sql="""
                UPDATE custom_toolchains
                SET status = %(status)s,
                    task_id = %(task_id)s
                WHERE toolchain = %(toolchain)s
                """,
            insert_sql="""
                INSERT INTO custom_toolchains (toolchain, status, task_id)
                VALUES (%(toolchain)s, %(status)s, %(task_id)s)
                """,
            params=toolchain.model_dump(),
        )

    def get_custom_toolchain(self, toolchain: str) -> CustomToolchain:
        row = self._execute(
            """
            SELECT toolchain, status, task_id
            FROM custom_toolchains
            WHERE toolchain = %(toolchain)s
            """,
            {"toolchain": toolchain},
        ).fetchone()
        if row is None:
            raise NotFoundError(f"no custom toolchain {toolchain}")
        return CustomToolchain.model_validate(row)

    # -- crate catalog -----------------------------------------------------

    def add_crate_version(self, version: CrateVersion) -> bool:
        """Insert a catalog entry; return False if it was already known."""
        return self._insert_if_absent(
            "crate_versions",
            """
            INSERT INTO crate_versions (name, version)
            VALUES (%(name)s, %(version)s)
            """,
            version.model_dump(),
        )

    def list_crate_versions(self, name: str | None = None) -> list[CrateVersion]:
        if name is None:
            cursor = self._execute(
                "SELECT name, version FROM crate_versions ORDER BY name, version",
                {},
            )
        else:
            cursor = self._execute(
                """
                SELECT name, version
                FROM crate_versions
                WHERE name = %(name)s
                ORDER BY version
                """,
                {"name": name},
            )
        return [CrateVersion.model_validate(row) for row in cursor.fetchall()]

    def set_crate_rank(self, rank: CrateRank) -> None:
        self._upsert(
            "crate_ranks",
            update_sql="UPDATE crate_ranks SET rank = %(rank)s WHERE name = %(name)s",
            insert_sql="INSERT INTO crate_ranks (name, rank) VALUES (%(name)s, %(rank)s)",
            params=rank.model_dump(),
        )

    def list_crate_ranks(self, limit: int | None = None) -> list[CrateRank]:
        query = "SELECT name, rank FROM crate_ranks ORDER BY rank, name"
        params: dict[str, Any] = {}
        if limit is not None:
            query += " LIMIT %(limit)s"
            params["limit"] = limit
        return [CrateRank.model_validate(row) for row in self._execute(query, params).fetchall()]

    def add_dep_edge(self, edge: DepEdge) -> bool:
        return self._insert_if_absent(
            "dep_edges",
            "INSERT INTO dep_edges (name, dep) VALUES (%(name)s, %(dep)s)",
            edge.model_dump(),
        )

    def list_dependents(self, dep: str) -> list[str]:
        rows = self._execute(
            "SELECT name FROM dep_edges WHERE dep = %(dep)s ORDER BY name",
            {"dep": dep},
        ).fetchall()
        return [str(row["name"]) for row in rows]

    # -- helpers -----------------------------------------------------------

    def _upsert(
        self,
        table: str,
        *,
        update_sql: str,
        insert_sql: str,
        params: dict[str, Any],
    ) -> None:
        """Update the keyed row, else insert it; retry when a concurrent insert wins."""
        for attempt in range(1, UPSERT_RETRY_LIMIT + 1):
            if self._execute(update_sql, params).rowcount > 0:
                return
            try:
                self._execute(insert_sql, params)
                return
            except pg_errors.UniqueViolation as exc:
                logger.debug(
                    "upsert event=insert_conflict table=%s attempt=%d/%d reason=%s",
                    table,
                    attempt,
                    UPSERT_RETRY_LIMIT,
                    exc,
                )
        logger.warning("upsert event=exhausted table=%s attempts=%d", table, UPSERT_RETRY_LIMIT)
        raise UpsertFailure(table, UPSERT_RETRY_LIMIT)

    def _insert_if_absent(self, table: str, insert_sql: str, params: dict[str, Any]) -> bool:
        try:
            self._execute(insert_sql, params)
        except pg_errors.UniqueViolation:
            logger.debug("insert event=duplicate table=%s", table)
            return False
        return True

    def _execute(self, query: str, params: dict[str, Any]) -> Any:
        try:
            return self._conn.execute(query, params)
        except psycopg.OperationalError as exc:
            raise StoreConnectionError(f"database connection failed: {exc}") from exc
