from __future__ import annotations

import argparse
import asyncio
import re

import asyncpg
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import create_async_engine

from credit_ledger.core.config import get_settings
from credit_ledger.core.integration_db_safety import assert_safe_integration_db
from credit_ledger.db.models.base import Base

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _checked_database_name(url: URL) -> str:
    if url.get_backend_name() != "postgresql":
        raise RuntimeError("Only PostgreSQL DATABASE_URL is supported.")
    if url.username is None:
        raise RuntimeError("DATABASE_URL username is required.")

    db_name = (url.database or "").strip()
    if "test" not in db_name.lower():
        raise RuntimeError(f"Refusing to create non-test database '{db_name}'.")
    if IDENTIFIER_RE.fullmatch(db_name) is None:
        raise RuntimeError(f"Unsupported database name '{db_name}'; use [A-Za-z0-9_] only.")
    return db_name


async def _create_database_if_missing(url: URL) -> bool:
    db_name = _checked_database_name(url)
    conn = await asyncpg.connect(
        host=url.host or "localhost",
        port=int(url.port or 5432),
        user=url.username,
        password=url.password,
        database="postgres",
    )
    try:
        if await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name):
            return False
        await conn.execute(f'CREATE DATABASE "{db_name}"')
        return True
    finally:
        await conn.close()


async def _create_schema(database_url: str) -> None:
    engine = create_async_engine(database_url)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()


async def _ensure(database_url: str, *, with_schema: bool) -> None:
    url = make_url(database_url)
    assert_safe_integration_db(database_url)

    created = await _create_database_if_missing(url)
    print(  # noqa: T201
        f"ensure_test_db: {'created' if created else 'exists'} db={url.database} host={url.host}"
    )
    if with_schema:
        await _create_schema(database_url)
        print("ensure_test_db: schema ready")  # noqa: T201


def main() -> int:
    parser = argparse.ArgumentParser(description="Create the local credit ledger test database.")
    parser.add_argument(
        "--schema",
        action="store_true",
        help="also create the ledger tables from the ORM metadata",
    )
    args = parser.parse_args()

    asyncio.run(_ensure(get_settings().database_url, with_schema=args.schema))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
