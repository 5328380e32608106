from __future__ import annotations

import argparse
import json
import sys

from crater_service.config.settings import DatabaseConfig, get_settings
from crater_service.errors import CraterError
from crater_service.storage.models import BuildResultKey
from crater_service.storage.postgres import PostgresResultStore


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Administer the crater build result database. Connection settings come from "
            "CRATER_DB__* environment variables or crater-web-config.json."
        )
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("migrate", help="Create or upgrade all tables.")

    drop = subparsers.add_parser("drop", help="Drop all tables (test databases only).")
    drop.add_argument("--yes", action="store_true", help="Confirm the destructive drop.")

    get = subparsers.add_parser("get", help="Print one build result as JSON.")
    get.add_argument("toolchain")
    get.add_argument("crate_name")
    get.add_argument("crate_vers")
    return parser.parse_args()


def _database_config() -> DatabaseConfig:
    config = get_settings().db
    if config is None:
        raise SystemExit("Database settings are missing (CRATER_DB__* or crater-web-config.json).")
    return config


def run(args: argparse.Namespace) -> int:
    if args.command == "drop" and not args.yes:
        print("Refusing to drop tables without --yes.", file=sys.stderr)
        return 2

    store = PostgresResultStore.connect(_database_config())
    if args.command == "migrate":
        store.close()
        print("Schema is up to date.")
        return 0
    if args.command == "drop":
        store.delete_tables_and_close()
        print("Dropped all crater tables.")
        return 0

    with store:
        result = store.get_build_result(
            BuildResultKey(
                toolchain=args.toolchain,
                crate_name=args.crate_name,
                crate_vers=args.crate_vers,
            )
        )
    print(json.dumps(result.model_dump(), indent=2))
    return 0


def main() -> None:
    args = _parse_args()
    try:
        code = run(args)
    except CraterError as exc:
        print(f"error: {exc}", file=sys.stderr)
        code = 1
    raise SystemExit(code)


if __name__ == "__main__":
    main()
