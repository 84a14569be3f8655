"""
Draft persistence behind a small load/save/clear interface.

Scheme workspaces and other in-progress data are kept through a DraftStore
so the import pipeline never touches storage directly.  FileDraftStore
writes one JSON file per key under DRAFT_DIR; MemoryDraftStore keeps the
same envelope in a dict.
"""
from __future__ import annotations

import abc
import copy
import json
import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiofiles

from notegen.config import settings

logger = logging.getLogger(__name__)

SCHEME_WORKSPACE_KEY = "scheme_of_learning_data"

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def draft_envelope(data: Any) -> Dict[str, Any]:
    """Wrap *data* with the time it was saved."""
    return {"data": data, "timestamp": datetime.now(timezone.utc).isoformat()}


class DraftStore(abc.ABC):
    """Async key/value store for drafts."""

    @abc.abstractmethod
    async def load(self, key: str) -> Optional[Any]:
        """Return the saved data for *key*, or None."""

    @abc.abstractmethod
    async def save(self, key: str, data: Any) -> None:
        ...

    @abc.abstractmethod
    async def clear(self, key: str) -> None:
        ...


class MemoryDraftStore(DraftStore):
    def __init__(self) -> None:
        self._drafts: Dict[str, Dict[str, Any]] = {}

    async def load(self, key: str) -> Optional[Any]:
        envelope = self._drafts.get(key)
        return copy.deepcopy(envelope["data"]) if envelope else None

    async def save(self, key: str, data: Any) -> None:
        self._drafts[key] = draft_envelope(copy.deepcopy(data))

    async def clear(self, key: str) -> None:
        self._drafts.pop(key, None)


class FileDraftStore(DraftStore):
    """One ``draft_{key}.json`` file per key under *directory*."""

    def __init__(self, directory: Optional[str] = None) -> None:
        self.directory = directory or settings.DRAFT_DIR

    def path_for(self, key: str) -> str:
        safe = _UNSAFE_KEY_CHARS.sub("_", key).strip("._") or "default"
        return os.path.join(self.directory, f"draft_{safe}.json")

    async def load(self, key: str) -> Optional[Any]:
        path = self.path_for(key)
        if not os.path.exists(path):
            return None
        async with aiofiles.open(path, "r", encoding="utf-8") as fh:
            raw = await fh.read()
        try:
            envelope = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring unreadable draft %s: %s", path, exc)
            return None
        return envelope.get("data") if isinstance(envelope, dict) else None

    async def save(self, key: str, data: Any) -> None:
        os.makedirs(self.directory, exist_ok=True)
        path = self.path_for(key)
        async with aiofiles.open(path, "w", encoding="utf-8") as fh:
            await fh.write(json.dumps(draft_envelope(data), ensure_ascii=False))
        logger.debug("Saved draft %s", path)

    async def clear(self, key: str) -> None:
        path = self.path_for(key)
        if os.path.exists(path):
            os.remove(path)
            logger.debug("Cleared draft %s", path)
