from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.db.repo.expiring_batches_repo import ExpiringBatchesRepo

logger = structlog.get_logger(__name__)


async def sweep(session: AsyncSession, *, user_id: str, now_utc: datetime) -> int:
    """Delete the user's batches whose ``expires_at`` is strictly before ``now_utc``."""
    deleted = await ExpiringBatchesRepo.delete_expired_by_user(
        session,
        user_id=user_id,
        now_utc=now_utc,
    )
    if deleted:
        logger.info("expired_credit_batches_swept", user_id=user_id, deleted=deleted)
    return deleted
