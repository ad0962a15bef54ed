from __future__ import annotations

import logging
import time
from typing import Any, List, Sequence

from .config import CacheSettings
from .models import CacheEntry, DetectedPhrase, FontVariant
from .store import KeyValueStore

logger = logging.getLogger(__name__)


def normalize_phrase(words: Sequence[str]) -> str:
    return " ".join(word.strip().lower() for word in words)


class VariantCache:
    """
    Versioned word, phrase and phrase-detection entries on top of a store.

    Entries written under a different schema or model version read back as
    misses, which is how cached styles are invalidated. Store failures are
    logged and degrade to misses; nothing here raises to the caller.
    """

    def __init__(self, store: KeyValueStore, settings: CacheSettings | None = None) -> None:
        self._store = store
        self._settings = settings or CacheSettings()

    @property
    def settings(self) -> CacheSettings:
        return self._settings

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def word_key(self, normalized: str, capitalized: bool = False) -> str:
        suffix = ":cap" if capitalized and self._settings.case_sensitive_keys else ""
        return f"{self._settings.word_prefix}{normalized.strip().lower()}{suffix}"

    def phrase_key(self, words: Sequence[str]) -> str:
        return f"{self._settings.phrase_prefix}{normalize_phrase(words)}"

    def detection_key(self, words: Sequence[str]) -> str:
        return f"{self._settings.detection_prefix}{'|'.join(words)}"

    async def get_word(self, normalized: str, capitalized: bool = False) -> FontVariant | None:
        return await self._read_variant(self.word_key(normalized, capitalized))

    async def set_word(
        self, normalized: str, variant: FontVariant, capitalized: bool = False
    ) -> None:
        await self._write_variant(self.word_key(normalized, capitalized), variant)

    async def increment_word_hits(self, normalized: str, capitalized: bool = False) -> None:
        await self._increment(self.word_key(normalized, capitalized))

    async def get_phrase(self, words: Sequence[str]) -> FontVariant | None:
        return await self._read_variant(self.phrase_key(words))

    async def set_phrase(self, words: Sequence[str], variant: FontVariant) -> None:
        await self._write_variant(self.phrase_key(words), variant)

    async def increment_phrase_hits(self, words: Sequence[str]) -> None:
        await self._increment(self.phrase_key(words))

    async def get_detection(self, words: Sequence[str]) -> List[DetectedPhrase] | None:
        """Return cached phrases for ``words``; ``[]`` means checked and none found."""
        key = self.detection_key(words)
        raw = await self._safe_get(key)
        if not isinstance(raw, dict) or not self._current(raw):
            return None
        phrases = raw.get("phrases")
        if not isinstance(phrases, list):
            return None
        return [DetectedPhrase.from_dict(item) for item in phrases]

    async def set_detection(
        self, words: Sequence[str], phrases: Sequence[DetectedPhrase]
    ) -> None:
        payload = {
            "phrases": [phrase.to_dict() for phrase in phrases],
            "schemaVersion": self._settings.schema_version,
            "modelVersion": self._settings.model_version,
            "createdAt": time.time(),
        }
        await self._safe_set(self.detection_key(words), payload)

    async def record_gallery(self, member: str, score: float | None = None) -> None:
        try:
            await self._store.zadd(
                self._settings.gallery_key, time.time() if score is None else score, member
            )
        except Exception as exc:  # pragma: no cover - store-related
            logger.error("Gallery index update failed for %r: %s", member, exc)

    async def _read_variant(self, key: str) -> FontVariant | None:
        entry = await self._read_entry(key)
        return entry.variant if entry else None

    async def _read_entry(self, key: str) -> CacheEntry | None:
        raw = await self._safe_get(key)
        if not isinstance(raw, dict):
            return None
        if not self._current(raw):
            logger.debug("Ignoring outdated cache entry %s", key)
            return None
        try:
            return CacheEntry.from_dict(raw)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Malformed cache entry %s: %s", key, exc)
            return None

    async def _write_variant(self, key: str, variant: FontVariant) -> None:
        entry = CacheEntry(
            variant=variant,
            schema_version=self._settings.schema_version,
            model_version=self._settings.model_version,
            created_at=time.time(),
        )
        await self._safe_set(key, entry.to_dict())

    async def _increment(self, key: str) -> None:
        entry = await self._read_entry(key)
        if entry is None:
            return
        entry.hit_count += 1
        await self._safe_set(key, entry.to_dict())

    def _current(self, raw: dict[str, Any]) -> bool:
        return (
            raw.get("schemaVersion") == self._settings.schema_version
            and raw.get("modelVersion") == self._settings.model_version
        )

    async def _safe_get(self, key: str) -> Any | None:
        try:
            return await self._store.get(key)
        except Exception as exc:  # pragma: no cover - store-related
            logger.error("Cache get failed for %s: %s", key, exc)
            return None

    async def _safe_set(self, key: str, value: Any) -> None:
        try:
            await self._store.set(key, value, ttl=self._settings.ttl_seconds)
        except Exception as exc:  # pragma: no cover - store-related
            logger.error("Cache set failed for %s: %s", key, exc)
