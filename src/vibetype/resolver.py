from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Mapping, Sequence, Set

from .cache import VariantCache, normalize_phrase
from .catalog import FontCatalog, nearest_standard_weight
from .color import NEUTRAL_CHROMA, NEUTRAL_HUE, NEUTRAL_LIGHTNESS, color_fields_from_response
from .config import VibeTypeConfig
from .inference import StyleInference, StyleRequest
from .models import ColorIntent, FontVariant, WordResolutionResult
from .tokenization import normalize_word
from .vetted import VettedStyles

logger = logging.getLogger(__name__)


def fallback_variant(family: str = "Inter") -> FontVariant:
    """The always-displayable variant used whenever inference is unavailable."""
    return FontVariant(
        family=family,
        weight=400,
        style="normal",
        color_intent=ColorIntent(NEUTRAL_HUE, NEUTRAL_CHROMA, NEUTRAL_LIGHTNESS),
    )


def validate_variant(response: Mapping[str, Any], catalog: FontCatalog) -> FontVariant:
    """
    Turn an untrusted inference response into a FontVariant.

    The family is mapped onto the catalog (exact, fuzzy, category, default),
    the weight snapped to one the family ships, italic dropped when the family
    has none, and the color wrapped/clamped into the OKLCH ranges.
    """
    raw_family = str(response.get("family") or "")
    category = response.get("category")
    family = catalog.resolve_family(
        raw_family, str(category) if category is not None else None
    )
    try:
        requested_weight = nearest_standard_weight(float(response.get("weight", 400)))
    except (TypeError, ValueError):
        requested_weight = 400
    weight = catalog.snap_weight(family, requested_weight)
    style = catalog.validate_style(family, str(response.get("style") or "normal"))
    hue, chroma, lightness = color_fields_from_response(response)
    return FontVariant(
        family=family,
        weight=weight,
        style=style,
        color_intent=ColorIntent(hue, chroma, lightness),
    )


def is_capitalized(word: str) -> bool:
    for char in word:
        if char.isalpha():
            return char.isupper()
    return False


class TieredResolver:
    """
    Resolve words and phrases: vetted styles, then the persistent cache, then
    inference. Inferred variants are validated and written back to the cache
    in the background.
    """

    def __init__(
        self,
        cache: VariantCache,
        inference: StyleInference | None = None,
        vetted: VettedStyles | None = None,
        catalog: FontCatalog | None = None,
        *,
        inference_timeout: float | None = 20.0,
    ) -> None:
        self._cache = cache
        self._inference = inference
        self._vetted = vetted if vetted is not None else VettedStyles.load()
        self._catalog = catalog or FontCatalog()
        self._inference_timeout = inference_timeout
        self._background: Set[asyncio.Task[None]] = set()

    @classmethod
    def from_config(
        cls,
        config: VibeTypeConfig,
        cache: VariantCache,
        inference: StyleInference | None = None,
    ) -> "TieredResolver":
        catalog = FontCatalog(default_family=config.default_family)
        return cls(
            cache,
            inference,
            VettedStyles.load(config.vetted_styles_path),
            catalog,
            inference_timeout=config.inference_timeout,
        )

    @property
    def catalog(self) -> FontCatalog:
        return self._catalog

    @property
    def cache(self) -> VariantCache:
        return self._cache

    async def resolve_word(self, word: str) -> WordResolutionResult:
        """Resolve one word; always returns a displayable variant."""
        normalized = normalize_word(word.strip())
        if not normalized:
            return WordResolutionResult(self._fallback(), "llm", fallback=True)
        capitalized = is_capitalized(word)

        vetted = self._vetted.word(normalized)
        if vetted is not None:
            logger.debug("Vetted style for %r", normalized)
            return WordResolutionResult(vetted, "vetted")

        cached = await self._cache.get_word(normalized, capitalized)
        if cached is not None:
            logger.debug("Cache hit for %r", normalized)
            self._spawn(self._cache.increment_word_hits(normalized, capitalized))
            return WordResolutionResult(cached, "cache")

        subject = word.strip() if capitalized else normalized
        return await self._infer_word(normalized, subject, capitalized)

    async def resolve_phrase(
        self, words: Sequence[str], reason: str = ""
    ) -> WordResolutionResult:
        """Resolve a phrase as one unit using the phrase tiers."""
        phrase = normalize_phrase(words)
        vetted = self._vetted.phrase(phrase)
        if vetted is not None:
            return WordResolutionResult(vetted, "vetted")

        cached = await self._cache.get_phrase(words)
        if cached is not None:
            logger.debug("Phrase cache hit for %r", phrase)
            self._spawn(self._cache.increment_phrase_hits(words))
            return WordResolutionResult(cached, "cache")

        return await self._infer_phrase(words, phrase, reason)

    async def regenerate_word(self, word: str) -> WordResolutionResult:
        """Ask inference for a fresh variant, replacing any cached one."""
        normalized = normalize_word(word.strip())
        capitalized = is_capitalized(word)
        subject = word.strip() if capitalized else normalized
        return await self._infer_word(normalized, subject, capitalized)

    async def regenerate_phrase(
        self, words: Sequence[str], reason: str = ""
    ) -> WordResolutionResult:
        return await self._infer_phrase(words, normalize_phrase(words), reason)

    async def drain(self) -> None:
        """Wait for background cache writes and hit counters to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _infer_word(
        self, normalized: str, subject: str, capitalized: bool
    ) -> WordResolutionResult:
        variant = await self._infer(StyleRequest(subject=subject, kind="word"))
        if variant is None:
            return WordResolutionResult(self._fallback(), "llm", fallback=True)
        logger.info(
            "Styled %r (llm) -> %s %s %s",
            subject,
            variant.family,
            variant.weight,
            variant.style,
        )
        self._spawn(self._cache.set_word(normalized, variant, capitalized))
        self._spawn(self._cache.record_gallery(normalized))
        return WordResolutionResult(variant, "llm")

    async def _infer_phrase(
        self, words: Sequence[str], phrase: str, reason: str
    ) -> WordResolutionResult:
        request = StyleRequest(subject=phrase, kind="phrase", guidance=reason or None)
        variant = await self._infer(request)
        if variant is None:
            return WordResolutionResult(self._fallback(), "llm", fallback=True)
        logger.info(
            "Styled phrase %r (llm) -> %s %s %s",
            phrase,
            variant.family,
            variant.weight,
            variant.style,
        )
        self._spawn(self._cache.set_phrase(words, variant))
        return WordResolutionResult(variant, "llm")

    async def _infer(self, request: StyleRequest) -> FontVariant | None:
        if self._inference is None:
            logger.warning(
                "No inference capability configured; using fallback for %r",
                request.subject,
            )
            return None
        try:
            response = await asyncio.wait_for(
                self._inference.suggest_variant(request), self._inference_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Inference timed out after %ss for %r; using fallback",
                self._inference_timeout,
                request.subject,
            )
            return None
        except Exception as exc:
            logger.warning("Inference failed for %r: %s", request.subject, exc)
            return None
        if not isinstance(response, Mapping):
            logger.warning("Inference returned %r for %r", type(response), request.subject)
            return None
        return validate_variant(response, self._catalog)

    def _fallback(self) -> FontVariant:
        return fallback_variant(self._catalog.default_family)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._finish_background)

    def _finish_background(self, task: "asyncio.Task[None]") -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background cache task failed: %s", exc)
