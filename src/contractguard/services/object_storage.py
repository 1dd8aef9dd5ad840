"""
Object storage for uploaded contract files, backed by a local directory.
"""

import asyncio
from pathlib import Path

import structlog

from contractguard.errors import NotFoundError, ValidationError

logger = structlog.get_logger(__name__)


class ObjectStorage:
    """Stores and fetches raw document bytes by relative path."""

    def __init__(self, root: Path | str):
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root not in target.parents:
            raise ValidationError(f"Storage path escapes the storage root: {path}")
        return target

    async def download(self, path: str) -> bytes:
        """Fetch an object's bytes."""
        target = self._resolve(path)
        if not target.is_file():
            raise NotFoundError("Stored file", path)
        data = await asyncio.to_thread(target.read_bytes)
        logger.debug("object_downloaded", path=path, size=len(data))
        return data

    async def upload(self, path: str, data: bytes) -> str:
        """Store bytes under a relative path, returning the path."""
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(target.write_bytes, data)
        logger.info("object_uploaded", path=path, size=len(data))
        return path
