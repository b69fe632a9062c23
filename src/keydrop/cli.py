"""Command line entry points: serve, schema migration and inventory seeding."""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from loguru import logger

from .audit import AuditEvent, audit_logger
from .database import close_database, create_schema, get_engine, get_session_factory
from .errors import StoreError
from .inventory import load_key_file
from .ledger import Ledger
from .runtime import Runtime


async def _migrate() -> int:
    try:
        await create_schema(get_engine())
    finally:
        await close_database()
    print("migrations applied")
    return 0


async def _with_ledger(action) -> int:
    # Catalog writes only; no Redis connection is opened.
    try:
        return await action(Ledger(get_session_factory()))
    finally:
        await close_database()


async def _with_runtime(action) -> int:
    runtime = await Runtime.start()
    try:
        return await action(runtime)
    finally:
        await runtime.close()


async def _seed_keys(ledger: Ledger, path: str) -> int:
    keys = load_key_file(path)
    created = await ledger.add_catalog_keys(keys)
    audit_logger.log(AuditEvent.CATALOG_SEEDED, created=created)
    print(f"seeded keys into DB: {created} new of {len(keys)} read")
    return 0


async def _refill(runtime: Runtime) -> int:
    count = await runtime.inventory.refill_pool()
    if count == 0:
        print("no keys found in DB")
    else:
        print(f"seeded {count} keys into redis set {runtime.pool.set_key}")
    return 0


async def _deprecate(runtime: Runtime, key_value: str) -> int:
    if await runtime.inventory.deprecate(key_value):
        print("key deprecated")
        return 0
    print("key not found in catalog")
    return 1


async def _status(runtime: Runtime) -> int:
    status = await runtime.inventory.status()
    print(f"pool={status.pool_size} catalog={status.catalog_size}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keydrop", description="Single-use key distribution service"
    )
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Run the HTTP server (default)")
    sub.add_parser("migrate", help="Create ledger tables if missing")
    seed = sub.add_parser("seed-keys", help="Add keys from a newline-separated file to the catalog")
    seed.add_argument("file", help="Path to the key file")
    sub.add_parser("refill-pool", help="Copy non-deprecated catalog keys into the Redis pool")
    deprecate = sub.add_parser("deprecate-key", help="Exclude a key from future refills")
    deprecate.add_argument("key_value")
    sub.add_parser("status", help="Show pool and catalog sizes")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "serve"

    if command == "serve":
        from .server import main as serve

        serve()
        return 0

    if command == "migrate":
        action = _migrate()
    elif command == "seed-keys":
        action = _with_ledger(lambda ledger: _seed_keys(ledger, args.file))
    elif command == "refill-pool":
        action = _with_runtime(_refill)
    elif command == "deprecate-key":
        action = _with_runtime(lambda rt: _deprecate(rt, args.key_value))
    else:
        action = _with_runtime(_status)

    try:
        return asyncio.run(action)
    except (StoreError, OSError) as e:
        logger.error(f"{command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
