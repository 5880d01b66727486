from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.db.models.purchases import Purchase


class PurchasesRepo:
    @staticmethod
    async def get_by_transaction_id(session: AsyncSession, transaction_id: str) -> Purchase | None:
        return await session.get(Purchase, transaction_id)

    @staticmethod
    async def get_by_transaction_id_for_update(
        session: AsyncSession,
        transaction_id: str,
    ) -> Purchase | None:
        stmt = (
            select(Purchase)
            .where(Purchase.transaction_id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def insert_if_absent(
        session: AsyncSession,
        *,
        transaction_id: str,
        user_id: str,
        product_id: str,
        purchase_date: datetime,
        price: Decimal | None,
        currency: str | None,
        status: str,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            pg_insert(Purchase)
            .values(
                transaction_id=transaction_id,
                user_id=user_id,
                product_id=product_id,
                purchase_date=purchase_date,
                price=price,
                currency=currency,
                status=status,
                restored=False,
                credit_status="none",
                created_at=now_utc,
                updated_at=now_utc,
            )
            .on_conflict_do_nothing(index_elements=[Purchase.transaction_id])
            .returning(Purchase.transaction_id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def list_by_user(session: AsyncSession, *, user_id: str, limit: int = 100) -> list[Purchase]:
        stmt = (
            select(Purchase)
            .where(Purchase.user_id == user_id)
            .order_by(Purchase.created_at.desc(), Purchase.transaction_id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_failed_credit_by_user(
        session: AsyncSession,
        *,
        user_id: str,
        limit: int = 100,
    ) -> list[Purchase]:
        stmt = (
            select(Purchase)
            .where(
                Purchase.user_id == user_id,
                Purchase.credit_status == "failed",
                Purchase.processed_at.is_(None),
                Purchase.restored.is_(False),
            )
            .order_by(Purchase.purchase_date.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
