from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Tuple

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Opaque async get/set/zadd capability backing the persistent caches."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the JSON-compatible value stored under ``key`` or None."""
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store ``value`` under ``key``, optionally expiring after ``ttl`` seconds."""
        raise NotImplementedError

    @abstractmethod
    async def zadd(self, key: str, score: float, member: str) -> None:
        """Add ``member`` to the sorted set ``key`` (updating its score)."""
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Process-local store; useful for development and tests."""

    def __init__(self) -> None:
        self._values: Dict[str, Tuple[Any, float | None]] = {}
        self._sorted_sets: Dict[str, Dict[str, float]] = {}

    async def get(self, key: str) -> Any | None:
        item = self._values.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= time.time():
            del self._values[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        expires_at = time.time() + ttl if ttl else None
        # Round-trip through JSON so callers never share mutable state with the store.
        self._values[key] = (json.loads(json.dumps(value)), expires_at)

    async def zadd(self, key: str, score: float, member: str) -> None:
        self._sorted_sets.setdefault(key, {})[member] = float(score)

    def sorted_set(self, key: str) -> List[Tuple[str, float]]:
        members = self._sorted_sets.get(key, {})
        return sorted(members.items(), key=lambda item: (item[1], item[0]))

    def __len__(self) -> int:
        return len(self._values)

    def clear(self) -> None:
        self._values.clear()
        self._sorted_sets.clear()


class JsonFileStore(MemoryStore):
    """MemoryStore persisted to a single JSON document after every write."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self._path = Path(path)
        self._lock = asyncio.Lock()
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        await super().set(key, value, ttl)
        await self._flush()

    async def zadd(self, key: str, score: float, member: str) -> None:
        await super().zadd(key, score, member)
        await self._flush()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to read store %s: %s", self._path, exc)
            return
        if not isinstance(payload, dict):
            logger.error("Store %s does not hold a JSON object; ignoring it", self._path)
            return
        for key, item in payload.get("values", {}).items():
            self._values[key] = (item.get("value"), item.get("expiresAt"))
        for key, members in payload.get("sortedSets", {}).items():
            self._sorted_sets[key] = {
                str(member): float(score) for member, score in members.items()
            }

    async def _flush(self) -> None:
        payload = {
            "values": {
                key: {"value": value, "expiresAt": expires_at}
                for key, (value, expires_at) in self._values.items()
            },
            "sortedSets": {key: dict(members) for key, members in self._sorted_sets.items()},
        }
        async with self._lock:
            await asyncio.to_thread(self._write, json.dumps(payload))

    def _write(self, text: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(text, encoding="utf-8")
        tmp_path.replace(self._path)


def build_store(path: str | Path | None) -> KeyValueStore:
    """Return a file-backed store when a path is configured, else an in-memory one."""
    if path:
        return JsonFileStore(path)
    return MemoryStore()
