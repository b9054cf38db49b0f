from __future__ import annotations

from fastapi import APIRouter

from fileshelf.api.routes import admin, auth, files

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(files.router)
api_router.include_router(admin.router, prefix="/admin")
# legacy mount point of the admin console
api_router.include_router(admin.router, prefix="/users", include_in_schema=False)
