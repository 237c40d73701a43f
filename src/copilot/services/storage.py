"""Local media storage for generated files (voiceover audio).

Files are written under MEDIA_ROOT and served by the app's /media static
mount, so the public URL is MEDIA_BASE_URL + the relative key. Blocking
filesystem calls run in a worker thread via asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)


class MediaStorage:
    """Stores bytes under a root directory and builds public URLs.

    Args:
        root: Directory that backs the /media mount.
        base_url: Public URL prefix for stored keys.
    """

    def __init__(self, root: str | Path, base_url: str) -> None:
        self._root = Path(root).resolve()
        self._base_url = base_url.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root not in path.parents:
            raise ValueError(f"Storage key escapes media root: {key}")
        return path

    def public_url(self, key: str) -> str:
        return f"{self._base_url}/{key}"

    async def save(self, key: str, data: bytes) -> str:
        """Write `data` at `key` and return its public URL."""
        path = self._path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.info("storage.saved", key=key, size=len(data))
        return self.public_url(key)

    async def delete(self, key: str) -> bool:
        path = self._path(key)

        def _unlink() -> bool:
            if not path.exists():
                return False
            path.unlink()
            return True

        removed = await asyncio.to_thread(_unlink)
        if removed:
            logger.info("storage.deleted", key=key)
        return removed
