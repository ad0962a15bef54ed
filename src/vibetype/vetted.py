from __future__ import annotations

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping

from .models import FontVariant

logger = logging.getLogger(__name__)

DEFAULT_VETTED_PATH = Path(__file__).with_name("data") / "vetted_styles.json"


class VettedStyles:
    """Read-only, human-approved variants for words and phrases."""

    def __init__(
        self,
        words: Mapping[str, FontVariant] | None = None,
        phrases: Mapping[str, FontVariant] | None = None,
        version: int = 0,
    ) -> None:
        self._words: Mapping[str, FontVariant] = MappingProxyType(
            {_key(word): variant for word, variant in (words or {}).items()}
        )
        self._phrases: Mapping[str, FontVariant] = MappingProxyType(
            {_key(phrase): variant for phrase, variant in (phrases or {}).items()}
        )
        self.version = version

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VettedStyles":
        return cls(
            words=_parse_section(data.get("words") or {}),
            phrases=_parse_section(data.get("phrases") or {}),
            version=int(data.get("version", 0)),
        )

    @classmethod
    def load(cls, path: str | Path | None = None) -> "VettedStyles":
        """Load the definition file once; defaults to the packaged styles."""
        target = Path(path) if path else DEFAULT_VETTED_PATH
        payload = json.loads(target.read_text(encoding="utf-8"))
        if not isinstance(payload, Mapping):
            raise ValueError(f"Vetted styles file {target} must define a mapping.")
        styles = cls.from_dict(payload)
        logger.debug(
            "Loaded %d vetted words and %d phrases (v%s) from %s",
            len(styles._words),
            len(styles._phrases),
            styles.version,
            target,
        )
        return styles

    def word(self, word: str) -> FontVariant | None:
        return self._words.get(_key(word))

    def phrase(self, phrase: str) -> FontVariant | None:
        return self._phrases.get(_key(phrase))

    def has_word(self, word: str) -> bool:
        return _key(word) in self._words

    def all_words(self) -> List[str]:
        return list(self._words)

    def all_phrases(self) -> List[str]:
        return list(self._phrases)


def _key(value: str) -> str:
    return value.strip().lower()


def _parse_section(section: Mapping[str, Any]) -> Dict[str, FontVariant]:
    parsed: Dict[str, FontVariant] = {}
    for name, raw in section.items():
        try:
            parsed[str(name)] = FontVariant.from_dict(raw)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed vetted style %r: %s", name, exc)
    return parsed
