"""
Local Filesystem Storage Implementation.
Stores objects as files under a base directory; used for development and tests.
"""

import os
import logging
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles

from ..exceptions import StorageError
from .interface import StorageInterface

logger = logging.getLogger(__name__)


class LocalStorage(StorageInterface):
    """
    Local filesystem storage implementation.
    Every object key maps to a file below base_dir.
    """

    def __init__(self, base_dir: str = "./data"):
        """
        Initialize local storage with a base directory.

        Args:
            base_dir: Base directory for all stored objects
        """
        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, path: str) -> Path:
        """Convert an object key to an absolute path inside base_dir."""
        full_path = (self.base_dir / path).resolve()

        if full_path != self.base_dir and self.base_dir not in full_path.parents:
            raise StorageError(f"Invalid path: {path} - path traversal detected", key=path)

        return full_path

    async def save(
        self,
        path: str,
        content: bytes | str,
        content_type: Optional[str] = None
    ) -> None:
        full_path = self._get_full_path(path)
        data = content.encode('utf-8') if isinstance(content, str) else content
        tmp_path = full_path.with_name(full_path.name + '.tmp')
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            # Write then rename so readers never observe a half-written snapshot
            async with aiofiles.open(tmp_path, 'wb') as f:
                await f.write(data)
            os.replace(tmp_path, full_path)
        except OSError as e:
            raise StorageError(f"Error saving {path}: {e}", key=path) from e

    async def load(self, path: str) -> Optional[bytes]:
        full_path = self._get_full_path(path)
        if not full_path.exists():
            return None
        try:
            async with aiofiles.open(full_path, 'rb') as f:
                return await f.read()
        except OSError as e:
            raise StorageError(f"Error loading {path}: {e}", key=path) from e

    async def exists(self, path: str) -> bool:
        return self._get_full_path(path).is_file()

    async def delete(self, path: str) -> bool:
        full_path = self._get_full_path(path)
        if not full_path.exists():
            return False
        try:
            full_path.unlink()
        except OSError as e:
            raise StorageError(f"Error deleting {path}: {e}", key=path) from e
        return True

    async def stream(self, path: str, chunk_size: int = 64 * 1024) -> AsyncIterator[bytes]:
        full_path = self._get_full_path(path)
        if not full_path.is_file():
            raise StorageError(f"Object not found: {path}", key=path)

        logger.info("Streaming %s (%.2f MB)", path, full_path.stat().st_size / (1024 * 1024))
        try:
            async with aiofiles.open(full_path, 'rb') as f:
                while True:
                    chunk = await f.read(chunk_size)
                    if not chunk:
                        break
                    yield chunk
        except OSError as e:
            raise StorageError(f"Error reading {path}: {e}", key=path) from e
