"""Idempotent schema management for the build result database.

Every statement is additive (``CREATE ... IF NOT EXISTS`` / ``ADD COLUMN IF
NOT EXISTS``) and runs in its own transaction, so ``ensure_schema`` is safe to
call on every connect, including from several processes at once.
"""

from __future__ import annotations

import logging
from typing import Any

import psycopg
from psycopg import errors as pg_errors

from crater_service.errors import SchemaError

logger = logging.getLogger(__name__)

TABLE_NAMES = (
    "build_results",
    "custom_toolchains",
    "crate_versions",
    "crate_ranks",
    "dep_edges",
)

# Outcomes of losing a creation race against another session. Postgres reports
# two sessions creating the same table as a unique violation on pg_type.
_ALREADY_EXISTS = (
    pg_errors.DuplicateTable,
    pg_errors.DuplicateObject,
    pg_errors.DuplicateColumn,
    pg_errors.UniqueViolation,
)

SCHEMA_STATEMENTS: tuple[tuple[str, str], ...] = (
    (
        "create build_results",
        """
        CREATE TABLE IF NOT EXISTS build_results (
            toolchain TEXT NOT NULL,
            crate_name TEXT NOT NULL,
            crate_vers TEXT NOT NULL,
            status TEXT NOT NULL,
            task_id TEXT NOT NULL,
            PRIMARY KEY (toolchain, crate_name, crate_vers)
        )
        """,
    ),
    # Tables created by the earlier schema revision carry a boolean `success`
    # column instead of `status`.
    (
        "add build_results.status",
        """
        ALTER TABLE build_results
        ADD COLUMN IF NOT EXISTS status TEXT
        """,
    ),
    (
        "backfill build_results.status",
        """
        DO $$
        BEGIN
            IF EXISTS (
                SELECT 1
                FROM information_schema.columns
                WHERE table_schema = ANY (current_schemas(false))
                  AND table_name = 'build_results'
                  AND column_name = 'success'
            ) THEN
                UPDATE build_results
                SET status = CASE WHEN success THEN 'success' ELSE 'failure' END
                WHERE status IS NULL;
                ALTER TABLE build_results ALTER COLUMN success DROP NOT NULL;
            END IF;
        END $$;
        """,
    ),
    (
        "require build_results.status",
        """
        ALTER TABLE build_results
        ALTER COLUMN status SET NOT NULL
        """,
    ),
    (
        "index build_results.toolchain",
        """
        CREATE INDEX IF NOT EXISTS idx_build_results_toolchain
        ON build_results(toolchain)
        """,
    ),
    (
        "create custom_toolchains",
        """
        CREATE TABLE IF NOT EXISTS custom_toolchains (
            toolchain TEXT NOT NULL,
            status TEXT NOT NULL,
            task_id TEXT NOT NULL,
            PRIMARY KEY (toolchain)
        )
        """,
    ),
    # The earlier revision stored a dist `url` here and had no `status`; a row
    # only existed once the toolchain had been published.
    (
        "add custom_toolchains.status",
        """
        ALTER TABLE custom_toolchains
        ADD COLUMN IF NOT EXISTS status TEXT
        """,
    ),
    (
        "backfill custom_toolchains.status",
        """
        DO $$
        BEGIN
            IF EXISTS (
                SELECT 1
                FROM information_schema.columns
                WHERE table_schema = ANY (current_schemas(false))
                  AND table_name = 'custom_toolchains'
                  AND column_name = 'url'
            ) THEN
                UPDATE custom_toolchains
                SET status = 'success'
                WHERE status IS NULL;
                ALTER TABLE custom_toolchains ALTER COLUMN url DROP NOT NULL;
            END IF;
        END $$;
        """,
    ),
    (
        "require custom_toolchains.status",
        """
        ALTER TABLE custom_toolchains
        ALTER COLUMN status SET NOT NULL
        """,
    ),
    (
        "create crate_versions",
        """
        CREATE TABLE IF NOT EXISTS crate_versions (
            name TEXT NOT NULL,
            version TEXT NOT NULL,
            PRIMARY KEY (name, version)
        )
        """,
    ),
    (
        "create crate_ranks",
        """
        CREATE TABLE IF NOT EXISTS crate_ranks (
            name TEXT NOT NULL,
            rank INTEGER NOT NULL,
            PRIMARY KEY (name)
        )
        """,
    ),
    (
        "create dep_edges",
        """
        CREATE TABLE IF NOT EXISTS dep_edges (
            name TEXT NOT NULL,
            dep TEXT NOT NULL,
            PRIMARY KEY (name, dep)
        )
        """,
    ),
    (
        "index dep_edges.dep",
        """
        CREATE INDEX IF NOT EXISTS idx_dep_edges_dep
        ON dep_edges(dep)
        """,
    ),
)


def ensure_schema(conn: Any) -> None:
    """Create or upgrade all tables; raise SchemaError on any real DDL failure."""
    for name, statement in SCHEMA_STATEMENTS:
        try:
            with conn.transaction():
                conn.execute(statement)
        except _ALREADY_EXISTS as exc:
            logger.info("schema event=already_exists step=%r reason=%s", name, exc)
        except psycopg.Error as exc:
            raise SchemaError(f"schema step {name!r} failed: {exc}") from exc
    logger.debug("schema event=ready tables=%s", ",".join(TABLE_NAMES))


def drop_schema(conn: Any) -> None:
    """Drop every table. Destructive; reserved for test fixtures and explicit admin use."""
    for table in TABLE_NAMES:
        try:
            with conn.transaction():
                conn.execute(f"DROP TABLE IF EXISTS {table}")
        except psycopg.Error as exc:
            raise SchemaError(f"dropping {table} failed: {exc}") from exc
    logger.warning("schema event=dropped tables=%s", ",".join(TABLE_NAMES))
