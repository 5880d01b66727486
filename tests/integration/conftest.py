from __future__ import annotations

import pytest
from sqlalchemy import text

from credit_ledger.core.integration_db_safety import assert_safe_integration_db
from credit_ledger.db.models.base import Base
from credit_ledger.db.session import engine

TRUNCATE_TABLES = (
    "credit_restorations",
    "purchases",
    "expiring_credit_batches",
    "credit_balances",
)

TRUNCATE_SQL = f"TRUNCATE TABLE {', '.join(TRUNCATE_TABLES)} RESTART IDENTITY CASCADE"


@pytest.fixture(autouse=True)
async def cleanup_db() -> None:
    # pooled asyncpg connections are bound to the loop that opened them
    await engine.dispose()

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - environment-dependent
        pytest.skip(f"Postgres is required for integration tests: {exc}")

    assert_safe_integration_db(str(engine.url))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text(TRUNCATE_SQL))

    yield

    await engine.dispose()
