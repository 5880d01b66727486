from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.db.models.credit_restorations import CreditRestoration


class RestorationsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, restoration: CreditRestoration) -> CreditRestoration:
        session.add(restoration)
        await session.flush()
        return restoration

    @staticmethod
    async def has_successful_for_transaction(
        session: AsyncSession,
        *,
        user_id: str,
        transaction_id: str,
    ) -> bool:
        stmt = (
            select(CreditRestoration.id)
            .where(
                CreditRestoration.user_id == user_id,
                CreditRestoration.transaction_id == transaction_id,
                CreditRestoration.status == "success",
            )
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def count_failed_for_transaction(session: AsyncSession, *, transaction_id: str) -> int:
        stmt = select(func.count(CreditRestoration.id)).where(
            CreditRestoration.transaction_id == transaction_id,
            CreditRestoration.status == "failed",
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def list_by_user(
        session: AsyncSession,
        *,
        user_id: str,
        limit: int = 100,
    ) -> list[CreditRestoration]:
        stmt = (
            select(CreditRestoration)
            .where(CreditRestoration.user_id == user_id)
            .order_by(CreditRestoration.created_at.desc(), CreditRestoration.id.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_stats_by_user(session: AsyncSession, *, user_id: str) -> tuple[int, int, int, datetime | None]:
        success = CreditRestoration.status == "success"
        stmt = select(
            func.count(CreditRestoration.id),
            func.count(CreditRestoration.id).filter(success),
            func.coalesce(func.sum(CreditRestoration.actual_credits_added).filter(success), 0),
            func.max(CreditRestoration.created_at),
        ).where(CreditRestoration.user_id == user_id)
        result = await session.execute(stmt)
        total, successful, credits_restored, last_created_at = result.one()
        return int(total or 0), int(successful or 0), int(credits_restored or 0), last_created_at
