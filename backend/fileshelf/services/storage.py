from __future__ import annotations

import asyncio
import logging
import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from fileshelf.core.config import settings
from fileshelf.core.errors import PayloadTooLarge

logger = logging.getLogger(__name__)

_SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,16}$")
_COPY_CHUNK = 1024 * 1024


@dataclass(frozen=True)
class StoredPayload:
    filename: str
    path: Path
    size: int


class StorageService:
    def __init__(self, root: Path | None = None) -> None:
        self._root = root or settings.upload_root

    @property
    def root(self) -> Path:
        return self._root

    def ensure_base_dirs(self) -> None:
        self._root.mkdir(parents=True, exist_ok=True)

    def owner_dir(self, owner_id: uuid.UUID | str) -> Path:
        path = self._root / str(owner_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def storage_name(original_name: str) -> str:
        suffix = Path(original_name or "").suffix
        if not _SAFE_SUFFIX.match(suffix):
            suffix = ""
        return f"{uuid.uuid4()}{suffix}"

    async def save_upload(
        self,
        owner_id: uuid.UUID | str,
        source: BinaryIO,
        original_name: str,
        *,
        max_bytes: int | None = None,
    ) -> StoredPayload:
        """Copy ``source`` to ``<root>/<owner>/<uuid><ext>``.

        Raises ``PayloadTooLarge`` once more than ``max_bytes`` have been read;
        the partial file is removed first.
        """
        limit = max_bytes if max_bytes is not None else settings.max_upload_size
        filename = self.storage_name(original_name)
        target = self.owner_dir(owner_id) / filename

        def _write() -> int:
            byte_count = 0
            with open(target, "wb") as handle:
                while True:
                    chunk = source.read(_COPY_CHUNK)
                    if not chunk:
                        break
                    byte_count += len(chunk)
                    if byte_count > limit:
                        raise PayloadTooLarge()
                    handle.write(chunk)
            return byte_count

        try:
            size = await asyncio.to_thread(_write)
        except BaseException:
            target.unlink(missing_ok=True)
            raise
        return StoredPayload(filename=filename, path=target, size=size)

    @staticmethod
    def exists(path: str | Path) -> bool:
        return Path(path).is_file()

    async def remove(self, path: str | Path) -> bool:
        """Delete a payload. A missing file is not an error; returns whether one was removed."""
        target = Path(path)

        def _remove() -> bool:
            if not target.exists():
                return False
            target.unlink()
            return True

        return await asyncio.to_thread(_remove)

    async def discard(self, path: str | Path) -> None:
        """Best-effort removal used when rolling back a failed write."""
        try:
            await self.remove(path)
        except OSError:
            logger.error("Could not remove orphaned payload %s", path, exc_info=True)

    async def remove_owner_dir(self, owner_id: uuid.UUID | str) -> None:
        target = self._root / str(owner_id)
        await asyncio.to_thread(shutil.rmtree, target, True)


storage_service = StorageService()
