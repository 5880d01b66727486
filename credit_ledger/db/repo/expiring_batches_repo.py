from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.db.models.expiring_credit_batches import ExpiringCreditBatch


class ExpiringBatchesRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, batch_id: int) -> ExpiringCreditBatch | None:
        return await session.get(ExpiringCreditBatch, batch_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, batch_id: int) -> ExpiringCreditBatch | None:
        stmt = (
            select(ExpiringCreditBatch)
            .where(ExpiringCreditBatch.id == batch_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, batch: ExpiringCreditBatch) -> ExpiringCreditBatch:
        session.add(batch)
        await session.flush()
        return batch

    @staticmethod
    async def list_live_by_user(
        session: AsyncSession,
        *,
        user_id: str,
        now_utc: datetime,
    ) -> list[ExpiringCreditBatch]:
        stmt = (
            select(ExpiringCreditBatch)
            .where(
                ExpiringCreditBatch.user_id == user_id,
                ExpiringCreditBatch.expires_at >= now_utc,
            )
            .order_by(ExpiringCreditBatch.expires_at.asc(), ExpiringCreditBatch.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def sum_live_by_user(session: AsyncSession, *, user_id: str, now_utc: datetime) -> int:
        stmt = select(func.coalesce(func.sum(ExpiringCreditBatch.amount), 0)).where(
            ExpiringCreditBatch.user_id == user_id,
            ExpiringCreditBatch.expires_at >= now_utc,
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def delete_expired_by_user(session: AsyncSession, *, user_id: str, now_utc: datetime) -> int:
        stmt = delete(ExpiringCreditBatch).where(
            ExpiringCreditBatch.user_id == user_id,
            ExpiringCreditBatch.expires_at < now_utc,
        )
        result = await session.execute(stmt)
        return int(result.rowcount or 0)

    @staticmethod
    async def delete(session: AsyncSession, *, batch: ExpiringCreditBatch) -> None:
        await session.delete(batch)
        await session.flush()
