"""Local JSON-file cache used while the relational store is unreachable."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Mapping, Optional

from payeebatch.domain.batch.ports import LocalCache

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"^[A-Za-z0-9_.\-]+$")


class FileLocalCache(LocalCache):
    """One JSON file per (namespace, job id) under ``root``."""

    def __init__(self, root: Path):
        self._root = Path(root)

    def _path(self, namespace: str, job_id: str) -> Path:
        for part in (namespace, job_id):
            if not _SAFE_NAME.match(part) or part in {".", ".."}:
                msg = f"Invalid cache key component: {part!r}"
                raise ValueError(msg)
        return self._root / namespace / f"{job_id}.json"

    async def put(self, namespace: str, job_id: str, payload: Mapping[str, Any]) -> None:
        path = self._path(namespace, job_id)
        body = json.dumps(dict(payload), ensure_ascii=False, default=str)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(body, encoding="utf-8")
            tmp.replace(path)

        await asyncio.to_thread(_write)
        logger.debug("Cached %s/%s locally", namespace, job_id)

    async def get(self, namespace: str, job_id: str) -> Optional[dict[str, Any]]:
        path = self._path(namespace, job_id)

        def _read() -> Optional[dict[str, Any]]:
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except FileNotFoundError:
                return None
            except json.JSONDecodeError as e:
                logger.warning("Discarding corrupt cache entry %s: %s", path, e)
                return None

        return await asyncio.to_thread(_read)

    async def delete(self, namespace: str, job_id: str) -> None:
        path = self._path(namespace, job_id)
        await asyncio.to_thread(path.unlink, missing_ok=True)

    async def keys(self, namespace: str) -> list[str]:
        directory = self._root / namespace

        def _list() -> list[str]:
            if not directory.is_dir():
                return []
            return sorted(p.stem for p in directory.glob("*.json"))

        return await asyncio.to_thread(_list)
