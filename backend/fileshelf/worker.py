from __future__ import annotations

import asyncio
import logging

from celery import Celery

from fileshelf.core.config import settings
from fileshelf.db.session import async_session_factory
from fileshelf.services import files as file_service
from fileshelf.services import ledger
from fileshelf.services import tokens as token_service

logger = logging.getLogger(__name__)

celery_app = Celery(
    "fileshelf",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)
celery_app.conf.update(task_serializer="json", result_serializer="json", accept_content=["json"])

_interval = settings.sweep_interval_hours * 60 * 60
celery_app.conf.beat_schedule = {
    "purge-deleted-files": {"task": "purge_deleted_files", "schedule": _interval},
    "reconcile-ledgers": {"task": "reconcile_ledgers", "schedule": _interval},
    "purge-expired-tokens": {"task": "purge_expired_tokens", "schedule": _interval},
}


async def _purge_deleted_files() -> dict[str, int]:
    async with async_session_factory() as db:
        report = await file_service.purge_deleted_files(db)
    return {"deleted_count": report.deleted_count, "freed_bytes": report.freed_bytes}


async def _reconcile_ledgers() -> int:
    async with async_session_factory() as db:
        drifts = await ledger.reconcile(db)
    if drifts:
        logger.warning("Reconciliation corrected %d ledger(s)", len(drifts))
    return len(drifts)


async def _purge_expired_tokens() -> int:
    async with async_session_factory() as db:
        removed = await token_service.purge_expired_tokens(db)
    logger.info("Removed %d expired token(s)", removed)
    return removed


@celery_app.task(name="purge_deleted_files")
def purge_deleted_files_task() -> dict[str, int]:
    return asyncio.run(_purge_deleted_files())


@celery_app.task(name="reconcile_ledgers")
def reconcile_ledgers_task() -> int:
    return asyncio.run(_reconcile_ledgers())


@celery_app.task(name="purge_expired_tokens")
def purge_expired_tokens_task() -> int:
    return asyncio.run(_purge_expired_tokens())
