from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, List, Mapping, Sequence, Set, Tuple

from .cache import VariantCache
from .inference import StyleInference
from .models import DetectedPhrase, ResolvedPhrase
from .resolver import TieredResolver

logger = logging.getLogger(__name__)

# Well-known units recognized without asking the inference capability.
KNOWN_PHRASES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("california", "dreaming"), "Famous song by The Mamas & the Papas"),
    (("bohemian", "rhapsody"), "Iconic Queen song"),
    (("stairway", "to", "heaven"), "Led Zeppelin classic"),
    (("hotel", "california"), "Eagles song"),
    (("new", "york"), "Major city name"),
    (("los", "angeles"), "Major city name"),
    (("san", "francisco"), "Major city name"),
    (("star", "wars"), "Iconic film franchise"),
    (("lord", "of", "the", "rings"), "Epic fantasy franchise"),
    (("game", "of", "thrones"), "TV series"),
    (("harry", "potter"), "Book/film franchise"),
    (("artificial", "intelligence"), "Technology concept"),
    (("climate", "change"), "Environmental concept"),
    (("social", "media"), "Technology concept"),
    (("carpe", "diem"), "Latin phrase meaning seize the day"),
    (("hakuna", "matata"), "Swahili phrase from The Lion King"),
    (("once", "upon", "a", "time"), "Classic story opening"),
    (("happily", "ever", "after"), "Classic story ending"),
    (("breaking", "bad"), "TV series"),
    (("stranger", "things"), "TV series"),
)


def is_valid_phrase(phrase: DetectedPhrase, word_count: int) -> bool:
    """Bounds and length checks for a phrase reported by inference."""
    return (
        0 <= phrase.start_index <= phrase.end_index < word_count
        and len(phrase.words) == phrase.end_index - phrase.start_index + 1
    )


def find_known_phrases(
    words: Sequence[str],
    known: Iterable[Tuple[Tuple[str, ...], str]] = KNOWN_PHRASES,
) -> List[DetectedPhrase]:
    lowered = [word.lower() for word in words]
    found: List[DetectedPhrase] = []
    for phrase_words, reason in known:
        size = len(phrase_words)
        for start in range(len(lowered) - size + 1):
            if tuple(lowered[start : start + size]) == phrase_words:
                found.append(
                    DetectedPhrase(
                        words=list(words[start : start + size]),
                        start_index=start,
                        end_index=start + size - 1,
                        reason=reason,
                    )
                )
    found.sort(key=lambda phrase: phrase.start_index)
    return found


class PhraseDetector:
    """
    Find contiguous runs of words that should be styled as one unit.

    Detection results are cached per exact word sequence; an empty list is a
    cached "checked, nothing found" outcome. Inference failures yield an
    empty list and are not retried.
    """

    def __init__(
        self,
        cache: VariantCache,
        inference: StyleInference | None = None,
        *,
        known_phrases: Iterable[Tuple[Tuple[str, ...], str]] = KNOWN_PHRASES,
        inference_timeout: float | None = 20.0,
    ) -> None:
        self._cache = cache
        self._inference = inference
        self._known = tuple(known_phrases)
        self._inference_timeout = inference_timeout
        self._background: Set[asyncio.Task[None]] = set()

    async def detect_phrases(self, words: Sequence[str]) -> List[DetectedPhrase]:
        if len(words) < 2:
            return []
        words = list(words)

        known = find_known_phrases(words, self._known)
        if known:
            return known

        cached = await self._cache.get_detection(words)
        if cached is not None:
            logger.debug("Detection cache hit for %s", "|".join(words))
            return cached

        if self._inference is None:
            return []

        try:
            response = await asyncio.wait_for(
                self._inference.detect_phrases(words), self._inference_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Phrase detection timed out for %r", " ".join(words))
            return []
        except Exception as exc:
            logger.warning("Phrase detection failed for %r: %s", " ".join(words), exc)
            return []

        phrases = self._parse(response, len(words))
        task = asyncio.ensure_future(self._cache.set_detection(words, phrases))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return phrases

    async def drain(self) -> None:
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @staticmethod
    def _parse(response: Any, word_count: int) -> List[DetectedPhrase]:
        raw_phrases = response.get("phrases") if isinstance(response, Mapping) else None
        if not isinstance(raw_phrases, list):
            return []
        phrases: List[DetectedPhrase] = []
        for item in raw_phrases:
            if not isinstance(item, Mapping):
                continue
            try:
                phrase = DetectedPhrase.from_dict(item)
            except (TypeError, ValueError):
                continue
            if is_valid_phrase(phrase, word_count):
                phrases.append(phrase)
            else:
                logger.debug("Discarding malformed phrase %r", item)
        return phrases


class PhraseResolver:
    """Detect phrases in a word list and resolve each one to a shared variant."""

    def __init__(self, detector: PhraseDetector, resolver: TieredResolver) -> None:
        self._detector = detector
        self._resolver = resolver

    async def __call__(self, words: Sequence[str]) -> List[ResolvedPhrase]:
        return await self.resolve_phrases(words)

    async def drain(self) -> None:
        await self._detector.drain()
        await self._resolver.drain()

    async def resolve_phrases(self, words: Sequence[str]) -> List[ResolvedPhrase]:
        normalized = [word.strip().lower() for word in words]
        try:
            detected = await self._detector.detect_phrases(normalized)
        except Exception as exc:
            logger.error("Phrase resolution failed: %s", exc)
            return []

        resolved: List[ResolvedPhrase] = []
        for phrase in detected:
            phrase_words = normalized[phrase.start_index : phrase.end_index + 1]
            result = await self._resolver.resolve_phrase(phrase_words, phrase.reason)
            resolved.append(
                ResolvedPhrase(
                    words=phrase_words,
                    start_index=phrase.start_index,
                    end_index=phrase.end_index,
                    variant=result.variant,
                    source=result.source,
                    reason=phrase.reason,
                )
            )
        return resolved
