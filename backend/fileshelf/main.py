from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from fileshelf.api.router import api_router
from fileshelf.core.config import settings
from fileshelf.core.errors import register_exception_handlers
from fileshelf.db.base import Base
from fileshelf.db.session import async_session_factory, engine
from fileshelf.services.storage import storage_service
from fileshelf.services.users import ensure_admin_user

logger = logging.getLogger(__name__)


def create_application() -> FastAPI:
    logging.basicConfig(level=settings.log_level.upper())
    app = FastAPI(title=settings.project_name)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    @app.on_event("startup")
    async def startup_event() -> None:  # noqa: D401
        storage_service.ensure_base_dirs()
        # an unreachable catalog raises here and aborts startup
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with async_session_factory() as session:
            await ensure_admin_user(
                session,
                email=settings.admin_email,
                password_hash=settings.effective_admin_password_hash,
            )
        logger.info("Upload root ensured under %s", settings.upload_root)

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.get(f"{settings.api_prefix}/health")
    async def api_health() -> dict[str, object]:
        try:
            async with async_session_factory() as session:
                await session.execute(text("SELECT 1"))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Health check could not reach the database: %s", exc)
            return {"success": False, "status": "error", "database": "unreachable"}
        return {"success": True, "status": "ok", "database": "connected"}

    return app


app = create_application()
