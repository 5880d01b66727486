from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.db.models.credit_balances import CreditBalance


class CreditBalancesRepo:
    @staticmethod
    async def get_by_user_id(session: AsyncSession, user_id: str) -> CreditBalance | None:
        return await session.get(CreditBalance, user_id)

    @staticmethod
    async def get_by_user_id_for_update(session: AsyncSession, user_id: str) -> CreditBalance | None:
        stmt = select(CreditBalance).where(CreditBalance.user_id == user_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_create_for_update(
        session: AsyncSession,
        *,
        user_id: str,
        now_utc: datetime,
    ) -> CreditBalance:
        await session.execute(
            pg_insert(CreditBalance)
            .values(
                user_id=user_id,
                permanent_amount=0,
                version=0,
                created_at=now_utc,
                updated_at=now_utc,
            )
            .on_conflict_do_nothing(index_elements=[CreditBalance.user_id])
        )
        stmt = (
            select(CreditBalance)
            .where(CreditBalance.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one()
