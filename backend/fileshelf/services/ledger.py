from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fileshelf.core.errors import NotFound
from fileshelf.models.file import FileRecord
from fileshelf.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerBalance:
    storage_used: int
    file_count: int


@dataclass(frozen=True)
class LedgerDrift:
    user_id: uuid.UUID
    recorded: LedgerBalance
    actual: LedgerBalance


async def adjust(db: AsyncSession, user_id: uuid.UUID, count_delta: int, size_delta: int) -> None:
    """Apply signed deltas in a single UPDATE so concurrent writers don't lose increments."""
    stmt = (
        update(User)
        .where(User.id == user_id)
        .values(
            file_count=User.file_count + count_delta,
            storage_used=User.storage_used + size_delta,
        )
    )
    await db.execute(stmt)
    await db.commit()


async def read(db: AsyncSession, user_id: uuid.UUID) -> LedgerBalance:
    result = await db.execute(select(User.storage_used, User.file_count).where(User.id == user_id))
    row = result.one_or_none()
    if row is None:
        raise NotFound("User not found")
    return LedgerBalance(storage_used=row.storage_used, file_count=row.file_count)


async def actual_balances(db: AsyncSession, user_id: uuid.UUID | None = None) -> dict[uuid.UUID, LedgerBalance]:
    stmt = (
        select(
            FileRecord.user_id,
            func.coalesce(func.sum(FileRecord.file_size), 0),
            func.count(FileRecord.id),
        )
        .where(FileRecord.deleted.is_(False))
        .group_by(FileRecord.user_id)
    )
    if user_id is not None:
        stmt = stmt.where(FileRecord.user_id == user_id)
    result = await db.execute(stmt)
    return {
        owner_id: LedgerBalance(storage_used=int(total), file_count=int(count))
        for owner_id, total, count in result.all()
    }


async def reconcile(db: AsyncSession, user_id: uuid.UUID | None = None) -> list[LedgerDrift]:
    """Rewrite drifted counters from the file registry and report what changed."""
    actual = await actual_balances(db, user_id)

    stmt = select(User.id, User.storage_used, User.file_count)
    if user_id is not None:
        stmt = stmt.where(User.id == user_id)
    rows = (await db.execute(stmt)).all()

    drifts: list[LedgerDrift] = []
    for owner_id, storage_used, file_count in rows:
        recorded = LedgerBalance(storage_used=storage_used, file_count=file_count)
        expected = actual.get(owner_id, LedgerBalance(storage_used=0, file_count=0))
        if recorded == expected:
            continue
        logger.warning(
            "Ledger drift for user %s: recorded=%s/%s actual=%s/%s",
            owner_id,
            recorded.file_count,
            recorded.storage_used,
            expected.file_count,
            expected.storage_used,
        )
        await db.execute(
            update(User)
            .where(User.id == owner_id)
            .values(storage_used=expected.storage_used, file_count=expected.file_count)
        )
        drifts.append(LedgerDrift(user_id=owner_id, recorded=recorded, actual=expected))

    await db.commit()
    return drifts
