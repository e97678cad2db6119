"""Blob store backed by a local directory."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path, PurePosixPath

from payeebatch.domain.batch.ports import BlobStore

logger = logging.getLogger(__name__)


class FilesystemBlobStore(BlobStore):
    """Stores blobs as files under ``root``; keys are relative POSIX paths."""

    def __init__(self, root: Path, base_url: str = "file://"):
        self._root = Path(root).resolve()
        self._base_url = base_url.rstrip("/")

    def _path_for(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if relative.is_absolute() or ".." in relative.parts:
            msg = f"Invalid blob key: {key!r}"
            raise ValueError(msg)
        return self._root.joinpath(*relative.parts)

    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        path = self._path_for(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(path)

        await asyncio.to_thread(_write)
        logger.debug("Stored blob %s (%d bytes, %s)", key, len(data), content_type)
        return self.get_public_url(key)

    async def download(self, key: str) -> bytes:
        path = self._path_for(key)
        return await asyncio.to_thread(path.read_bytes)

    def get_public_url(self, key: str) -> str:
        if self._base_url == "file:":
            return self._path_for(key).as_uri()
        return f"{self._base_url}/{key}"

    async def remove(self, key: str) -> bool:
        path = self._path_for(key)

        def _unlink() -> bool:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            return True

        return await asyncio.to_thread(_unlink)
