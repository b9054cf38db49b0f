from __future__ import annotations

from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from fileshelf.core.config import settings

engine_options: dict[str, Any] = {"future": True, "echo": False, "pool_pre_ping": True}
if settings.database_url.startswith("sqlite"):
    # aiosqlite connections must not outlive the event loop that opened them
    engine_options["poolclass"] = NullPool

engine = create_async_engine(settings.database_url, **engine_options)

async_session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_db_session() -> AsyncIterator[AsyncSession]:
    async with async_session_factory() as session:
        yield session
