import os
import tempfile
from pathlib import Path

# Settings are read once at import time, so the environment has to be in
# place before any fileshelf module is imported.
_ROOT = Path(tempfile.mkdtemp(prefix="fileshelf-tests-"))

os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_ROOT / 'catalog.db'}")
os.environ.setdefault("UPLOAD_ROOT", str(_ROOT / "uploads"))
os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production")
os.environ.setdefault("ADMIN_EMAIL", "admin@example.com")
os.environ.setdefault("ADMIN_PASSWORD", "admin-secret")
os.environ.setdefault("EXPOSE_RESET_TOKEN", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")
